from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

class CamelModel(BaseModel):
    # Wire format is camelCase (salePrice, suburbAvg); Python side stays snake_case.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

class CreatePropertyRequest(CamelModel):
    address: str = Field(min_length=1, examples=["12 George Street"])
    suburb: str = Field(min_length=1, examples=["Bondi"])
    state: str | None = Field(default=None, examples=["NSW"])
    postcode: str | None = Field(default=None, examples=["2026"])
    sale_price: float = Field(gt=0, allow_inf_nan=False, description="Sale price in dollars", examples=[2850000])
    description: str | None = Field(
        default=None, examples=["4 bedroom coastal home within walking distance to Bondi Beach"]
    )

class PropertyResponse(CamelModel):
    id: str
    address: str
    suburb: str = Field(description="Suburb name (normalized to lowercase)")
    state: str | None = None
    postcode: str | None = None
    sale_price: float
    description: str | None = None
    created_at: datetime

class PropertySearchItem(PropertyResponse):
    suburb_avg: float = Field(description="Average sale price for the suburb")
    comparison: Literal["above", "below", "equal"] = Field(
        description="Price comparison relative to suburb average"
    )

class Pagination(CamelModel):
    page: int
    limit: int
    total: int = Field(description="Total number of properties matching the query")
    total_pages: int

class PropertySearchResponse(CamelModel):
    properties: list[PropertySearchItem]
    pagination: Pagination

class ErrorResponse(CamelModel):
    status: str = "error"
    message: str
    request_id: str
    timestamp: datetime
    details: list[dict[str, Any]] | None = None
