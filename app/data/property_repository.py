import math
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import httpx

from .base import NewProperty, Property, PropertyRepository, PropertyWithComparison, SearchResult
from ..core.comparison import classify
from ..core.config import settings
from ..core.errors import StorageError


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if total else 0

def with_comparison(prop: Property, suburb_avg: float) -> PropertyWithComparison:
    return PropertyWithComparison(
        **vars(prop), suburb_avg=suburb_avg, comparison=classify(prop.sale_price, suburb_avg)
    )


class InMemoryPropertyRepository(PropertyRepository):
    """
    Process-local store. Records keep insertion order; a running (sum, count)
    per suburb is maintained on every add so averages never rescan the list.
    """
    def __init__(self):
        self._items: List[Property] = []
        self._totals: Dict[str, List[float]] = {}

    async def add_property(self, new: NewProperty) -> Property:
        created = Property(
            id=str(uuid.uuid4()),
            created_at=datetime.now(timezone.utc),
            address=new.address,
            suburb=new.suburb,
            sale_price=new.sale_price,
            state=new.state,
            postcode=new.postcode,
            description=new.description,
        )
        self._items.append(created)
        bucket = self._totals.setdefault(created.suburb, [0.0, 0])
        bucket[0] += created.sale_price
        bucket[1] += 1
        return created

    def suburb_average(self, suburb: str) -> Optional[float]:
        bucket = self._totals.get(suburb)
        if not bucket:
            return None
        return bucket[0] / bucket[1]

    async def search_properties(self, suburb: Optional[str], page: int, limit: int) -> SearchResult:
        candidates = [p for p in self._items if p.suburb == suburb] if suburb else list(self._items)
        total = len(candidates)
        offset = (page - 1) * limit
        window = candidates[offset:offset + limit]

        properties = []
        for p in window:
            avg = self.suburb_average(p.suburb)
            properties.append(with_comparison(p, p.sale_price if avg is None else avg))

        return SearchResult(
            properties=properties, total=total, page=page, limit=limit,
            total_pages=total_pages(total, limit),
        )


def _quote(value: str) -> str:
    # PostgREST list syntax: values are double-quoted, \ and " escaped.
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'

def _parse_total(content_range: Optional[str], fallback: Optional[int]) -> Optional[int]:
    """Content-Range looks like '0-49/150' or '*/0'; the part after '/' is the exact count."""
    if content_range and "/" in content_range:
        size = content_range.rsplit("/", 1)[1]
        if size.isdigit():
            return int(size)
    return fallback

def _row_to_property(row: Dict[str, Any]) -> Property:
    return Property(
        id=str(row["id"]),
        address=row["address"],
        suburb=row["suburb"],
        state=row.get("state"),
        postcode=row.get("postcode"),
        # numeric columns come back as strings
        sale_price=float(row["sale_price"]),
        description=row.get("description"),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class SupabasePropertyRepository(PropertyRepository):
    """
    Store backed by a Supabase table through its PostgREST interface.
    Expects columns: id, address, suburb, state, postcode, sale_price, description, created_at.
    """
    COLUMNS = "id,address,suburb,state,postcode,sale_price,description,created_at"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        table: str = "properties",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/") + "/rest/v1"
        self.table = table
        self.timeout = timeout
        self.transport = transport
        self.headers = {"apikey": api_key, "Authorization": f"Bearer {api_key}"}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url, headers=self.headers,
            timeout=self.timeout, transport=self.transport,
        )

    async def ping(self) -> None:
        try:
            async with self._client() as client:
                r = await client.get(f"/{self.table}", params={"select": "id", "limit": 1})
                r.raise_for_status()
        except httpx.HTTPError as exc:
            raise StorageError("Failed to connect to Supabase", exc) from exc

    async def add_property(self, new: NewProperty) -> Property:
        payload = {
            "id": str(uuid.uuid4()),
            "address": new.address,
            "suburb": new.suburb,
            "state": new.state,
            "postcode": new.postcode,
            "sale_price": new.sale_price,
            "description": new.description,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            async with self._client() as client:
                r = await client.post(
                    f"/{self.table}", json=payload,
                    headers={"Prefer": "return=representation"},
                )
                r.raise_for_status()
                rows = r.json()
            return _row_to_property(rows[0])
        except (httpx.HTTPError, ValueError, KeyError, IndexError) as exc:
            raise StorageError("Failed to insert property", exc) from exc

    async def search_properties(self, suburb: Optional[str], page: int, limit: int) -> SearchResult:
        offset = (page - 1) * limit
        params: Dict[str, Any] = {
            "select": self.COLUMNS,
            # created_at alone can tie; id makes the order total
            "order": "created_at.asc,id.asc",
            "offset": offset,
            "limit": limit,
        }
        if suburb:
            params["suburb"] = f"eq.{suburb}"

        async with self._client() as client:
            try:
                r = await client.get(f"/{self.table}", params=params, headers={"Prefer": "count=exact"})
                if r.status_code == 416:
                    # Offset past the end; PostgREST still reports the size as */N
                    rows: List[Dict[str, Any]] = []
                    total = _parse_total(r.headers.get("content-range"), None)
                    if total is None:
                        raise StorageError("Failed to search properties: 416 reply without a row count")
                else:
                    r.raise_for_status()
                    rows = r.json()
                    total = _parse_total(r.headers.get("content-range"), offset + len(rows))
                page_items = [_row_to_property(row) for row in rows]
            except (httpx.HTTPError, ValueError, KeyError) as exc:
                raise StorageError("Failed to search properties", exc) from exc

            averages = await self._suburb_averages(client, {p.suburb for p in page_items})

        return SearchResult(
            properties=[with_comparison(p, averages.get(p.suburb, p.sale_price)) for p in page_items],
            total=total, page=page, limit=limit,
            total_pages=total_pages(total, limit),
        )

    async def _suburb_averages(self, client: httpx.AsyncClient, suburbs: Iterable[str]) -> Dict[str, float]:
        """
        Mean sale_price over every row of each suburb (not just the current page).
        The server may cap rows per response (db-max-rows), so rows are read in
        chunks until the exact count reported in Content-Range is reached.
        """
        wanted = sorted(set(suburbs))
        if not wanted:
            return {}
        params: Dict[str, Any] = {
            "select": "suburb,sale_price",
            "suburb": "in.(" + ",".join(_quote(s) for s in wanted) + ")",
            "order": "id.asc",
        }
        stats: Dict[str, List[float]] = {}
        seen = 0
        try:
            while True:
                r = await client.get(
                    f"/{self.table}", params={**params, "offset": seen},
                    headers={"Prefer": "count=exact"},
                )
                r.raise_for_status()
                rows = r.json()
                for row in rows:
                    bucket = stats.setdefault(row["suburb"], [0.0, 0])
                    bucket[0] += float(row["sale_price"])
                    bucket[1] += 1
                seen += len(rows)
                total = _parse_total(r.headers.get("content-range"), seen)
                if seen >= total:
                    break
                if not rows:
                    raise StorageError(
                        f"Failed to calculate suburb averages: read {seen} of {total} rows"
                    )
        except (httpx.HTTPError, ValueError, KeyError) as exc:
            raise StorageError("Failed to calculate suburb averages", exc) from exc
        return {name: s / n for name, (s, n) in stats.items()}


def property_repository() -> PropertyRepository:
    """
    Factory picks in-memory or Supabase storage based on env flags.
    """
    if settings.REPOSITORY_PROVIDER == "supabase":
        if not settings.SUPABASE_URL or not settings.SUPABASE_KEY:
            raise RuntimeError("SUPABASE_URL and SUPABASE_KEY are required when REPOSITORY_PROVIDER=supabase")
        return SupabasePropertyRepository(
            settings.SUPABASE_URL, settings.SUPABASE_KEY,
            table=settings.SUPABASE_TABLE, timeout=settings.SUPABASE_TIMEOUT_SECONDS,
        )
    return InMemoryPropertyRepository()
