from typing import Protocol, List, Optional
from dataclasses import dataclass, field
from datetime import datetime

from ..core.comparison import Comparison

# ----- Data shapes (thin & explicit) -----

@dataclass
class NewProperty:
    # Already sanitized by the service; suburb is the normalized identity key.
    address: str
    suburb: str
    sale_price: float
    state: Optional[str] = None
    postcode: Optional[str] = None
    description: Optional[str] = None

@dataclass
class Property:
    id: str
    address: str
    suburb: str
    sale_price: float
    created_at: datetime
    state: Optional[str] = None
    postcode: Optional[str] = None
    description: Optional[str] = None

@dataclass(kw_only=True)
class PropertyWithComparison(Property):
    suburb_avg: float
    comparison: Comparison

@dataclass
class SearchResult:
    properties: List[PropertyWithComparison] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 50
    total_pages: int = 0

# ----- Protocols (interfaces) -----

class PropertyRepository(Protocol):
    async def add_property(self, new: NewProperty) -> Property: ...
    async def search_properties(
        self, suburb: Optional[str], page: int, limit: int
    ) -> SearchResult: ...
