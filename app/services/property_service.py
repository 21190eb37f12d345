import math
from typing import Optional

from ..core.errors import ValidationError, field_error
from ..core.utils import normalize_state, normalize_suburb, sanitize_optional, sanitize_string
from ..data.base import NewProperty, Property, PropertyRepository, SearchResult

MAX_PAGE_SIZE = 100

class PropertyService:
    """
    Orchestrates:
      raw input → business-rule checks → sanitize/normalize → repository
    The repository is injected so the in-memory and Supabase stores swap freely.
    """
    def __init__(self, repo: PropertyRepository):
        self.repo = repo

    async def add_property(self, new: NewProperty) -> Property:
        if not new.address or not new.suburb or new.sale_price is None:
            raise ValidationError(
                "address, suburb and salePrice required",
                [field_error(name, "Field is required")
                 for name, value in (("address", new.address), ("suburb", new.suburb), ("salePrice", new.sale_price))
                 if value is None or value == ""],
            )
        # NaN fails every comparison, so finiteness is checked on its own
        if not math.isfinite(new.sale_price) or new.sale_price <= 0:
            raise ValidationError(
                "salePrice must be a positive finite number",
                [field_error("salePrice", "Must be a finite number greater than 0")],
            )

        clean = NewProperty(
            address=sanitize_string(new.address),
            suburb=normalize_suburb(new.suburb),
            sale_price=new.sale_price,
            state=normalize_state(new.state),
            postcode=sanitize_optional(new.postcode),
            description=sanitize_optional(new.description),
        )
        # Whitespace-only or markup-only text sanitizes away to nothing
        blanks = [name for name in ("address", "suburb") if not getattr(clean, name)]
        if blanks:
            raise ValidationError(
                f"{' and '.join(blanks)} must not be blank",
                [field_error(name, "Must contain non-blank text") for name in blanks],
            )

        return await self.repo.add_property(clean)

    async def search_properties(
        self, suburb: Optional[str] = None, page: int = 1, limit: int = 50
    ) -> SearchResult:
        if page < 1:
            raise ValidationError("page must be greater than 0", [field_error("page", "Must be at least 1")])
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(
                f"limit must be between 1 and {MAX_PAGE_SIZE}",
                [field_error("limit", f"Must be between 1 and {MAX_PAGE_SIZE}")],
            )

        normalized = normalize_suburb(suburb) or None
        return await self.repo.search_properties(normalized, page, limit)
