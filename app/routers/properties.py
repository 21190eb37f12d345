from fastapi import APIRouter, Depends, Query, Request, status
from ..schemas import CreatePropertyRequest, Pagination, PropertyResponse, PropertySearchItem, PropertySearchResponse, ErrorResponse
from ..services.property_service import PropertyService
from ..data.base import NewProperty

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Validation error"},
    500: {"model": ErrorResponse, "description": "Internal server error"},
}

def service_dep(request: Request) -> PropertyService:
    # Built once in create_app; the in-memory store must outlive a request.
    return request.app.state.property_service

@router.post(
    "/properties",
    response_model=PropertyResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
    summary="Add a new property",
)
async def create_property(body: CreatePropertyRequest, svc: PropertyService = Depends(service_dep)):
    prop = await svc.add_property(NewProperty(
        address=body.address,
        suburb=body.suburb,
        sale_price=body.sale_price,
        state=body.state,
        postcode=body.postcode,
        description=body.description,
    ))
    return PropertyResponse.model_validate(prop)

@router.get(
    "/properties",
    response_model=PropertySearchResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
    summary="Search properties with optional suburb filter",
)
async def search_properties(
    suburb: str | None = Query(default=None, description="Filter by suburb name (case-insensitive)"),
    page: int = Query(default=1, description="Page number, starting at 1"),
    limit: int = Query(default=50, description="Items per page, 1 to 100"),
    svc: PropertyService = Depends(service_dep),
):
    # Range checks live in the service so every caller gets them.
    result = await svc.search_properties(suburb, page, limit)
    return PropertySearchResponse(
        properties=[PropertySearchItem.model_validate(p) for p in result.properties],
        pagination=Pagination(
            page=result.page, limit=result.limit,
            total=result.total, total_pages=result.total_pages,
        ),
    )
