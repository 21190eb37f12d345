"""Tests for SupabasePropertyRepository against a fake PostgREST endpoint."""

import json
import re

import httpx
import pytest

from app.core.config import settings
from app.core.errors import StorageError
from app.data.base import NewProperty
from app.data.property_repository import (
    InMemoryPropertyRepository,
    SupabasePropertyRepository,
    _parse_total,
    _quote,
    property_repository,
)

BASE_URL = "https://demo.supabase.co"
API_KEY = "service-key"


class FakePostgrest:
    """Minimal in-process stand-in for the PostgREST table endpoint."""

    def __init__(self, max_rows: int | None = None) -> None:
        self.rows: list[dict] = []
        # mirrors db-max-rows: no response carries more rows than this
        self.max_rows = max_rows
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        assert request.url.path == "/rest/v1/properties"
        if request.method == "POST":
            row = json.loads(request.content)
            # numeric columns round-trip as strings
            row["sale_price"] = f"{row['sale_price']:.2f}"
            self.rows.append(row)
            return httpx.Response(201, json=[row])
        return self._select(request)

    def _select(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        rows = list(self.rows)
        suburb = params.get("suburb")
        if suburb and suburb.startswith("eq."):
            rows = [r for r in rows if r["suburb"] == suburb[3:]]
        elif suburb and suburb.startswith("in."):
            wanted = {m.replace('\\"', '"').replace("\\\\", "\\")
                      for m in re.findall(r'"((?:[^"\\]|\\.)*)"', suburb)}
            rows = [r for r in rows if r["suburb"] in wanted]
        if params.get("order") == "created_at.asc,id.asc":
            rows.sort(key=lambda r: (r["created_at"], r["id"]))

        total = len(rows)
        offset = int(params.get("offset", 0))
        end = offset + int(params["limit"]) if "limit" in params else None
        rows = rows[offset:end]
        if self.max_rows is not None:
            rows = rows[:self.max_rows]
        headers = {}
        if request.headers.get("prefer") == "count=exact":
            if offset > 0 and offset >= total:
                return httpx.Response(416, json={"message": "range not satisfiable"},
                                      headers={"content-range": f"*/{total}"})
            end = offset + len(rows) - 1
            headers["content-range"] = f"{offset}-{end}/{total}" if rows else f"*/{total}"
        columns = params.get("select", "").split(",")
        return httpx.Response(200, json=[{c: r.get(c) for c in columns} for r in rows], headers=headers)


@pytest.fixture
def fake() -> FakePostgrest:
    return FakePostgrest()


@pytest.fixture
def supa(fake: FakePostgrest) -> SupabasePropertyRepository:
    return SupabasePropertyRepository(BASE_URL, API_KEY, transport=httpx.MockTransport(fake))


def _new(suburb: str, price: float, **extra) -> NewProperty:
    return NewProperty(address="12 George Street", suburb=suburb, sale_price=price, **extra)


class TestHelpers:
    def test_parse_total(self) -> None:
        assert _parse_total("0-49/150", 0) == 150
        assert _parse_total("*/0", 7) == 0
        assert _parse_total("0-1/*", 2) == 2
        assert _parse_total(None, 3) == 3

    def test_quote_escapes(self) -> None:
        assert _quote("bondi") == '"bondi"'
        assert _quote('o"connor') == '"o\\"connor"'


class TestAddProperty:
    async def test_insert_payload_and_headers(self, supa, fake) -> None:
        prop = await supa.add_property(_new("bondi", 2_850_000, state="NSW", postcode="2026"))

        req = fake.requests[0]
        assert req.method == "POST"
        assert req.headers["apikey"] == API_KEY
        assert req.headers["authorization"] == f"Bearer {API_KEY}"
        assert req.headers["prefer"] == "return=representation"
        body = json.loads(req.content)
        assert body["suburb"] == "bondi"
        assert body["sale_price"] == 2_850_000
        assert body["id"] == prop.id

        assert prop.sale_price == 2_850_000.0
        assert prop.state == "NSW"
        assert prop.postcode == "2026"
        assert prop.description is None
        assert prop.created_at.tzinfo is not None

    async def test_rejected_write_is_storage_error(self) -> None:
        transport = httpx.MockTransport(lambda r: httpx.Response(409, json={"message": "duplicate key"}))
        repo = SupabasePropertyRepository(BASE_URL, API_KEY, transport=transport)
        with pytest.raises(StorageError) as exc_info:
            await repo.add_property(_new("bondi", 100))
        assert exc_info.value.message == "Failed to insert property"
        assert isinstance(exc_info.value.cause, httpx.HTTPStatusError)

    async def test_connection_failure_is_storage_error(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        repo = SupabasePropertyRepository(BASE_URL, API_KEY, transport=httpx.MockTransport(refuse))
        with pytest.raises(StorageError) as exc_info:
            await repo.add_property(_new("bondi", 100))
        assert isinstance(exc_info.value.cause, httpx.ConnectError)


class TestSearchProperties:
    async def test_filter_total_and_averages(self, supa, fake) -> None:
        for price in (100, 200, 300):
            await supa.add_property(_new("bondi", price))
        await supa.add_property(_new("manly", 5000))

        result = await supa.search_properties("bondi", 1, 2)
        assert result.total == 3
        assert result.total_pages == 2
        assert len(result.properties) == 2
        # Mean over all three bondi rows, not only the two on this page
        assert all(p.suburb_avg == 200 for p in result.properties)
        expected = {100: "below", 200: "equal", 300: "above"}
        assert all(p.comparison == expected[p.sale_price] for p in result.properties)

        page_req, avg_req = fake.requests[-2:]
        assert page_req.url.params["suburb"] == "eq.bondi"
        assert page_req.url.params["order"] == "created_at.asc,id.asc"
        assert page_req.url.params["offset"] == "0"
        assert page_req.url.params["limit"] == "2"
        assert page_req.headers["prefer"] == "count=exact"
        assert avg_req.url.params["suburb"] == 'in.("bondi")'

    async def test_unfiltered_mixed_page(self, supa) -> None:
        await supa.add_property(_new("bondi", 100))
        await supa.add_property(_new("manly", 400))
        await supa.add_property(_new("bondi", 300))

        result = await supa.search_properties(None, 1, 50)
        assert result.total == 3
        avgs = {p.suburb: p.suburb_avg for p in result.properties}
        assert avgs == {"bondi": 200, "manly": 400}

    async def test_empty_table(self, supa, fake) -> None:
        result = await supa.search_properties("nowhere", 1, 50)
        assert result.properties == []
        assert result.total == 0
        assert result.total_pages == 0
        # No averages lookup when the page is empty
        assert len(fake.requests) == 1

    async def test_page_past_the_end(self, supa) -> None:
        await supa.add_property(_new("bondi", 100))
        result = await supa.search_properties("bondi", 3, 10)
        assert result.properties == []
        assert result.total == 1
        assert result.total_pages == 1

    async def test_416_without_row_count_is_storage_error(self) -> None:
        transport = httpx.MockTransport(lambda r: httpx.Response(416, json={"message": "range not satisfiable"}))
        repo = SupabasePropertyRepository(BASE_URL, API_KEY, transport=transport)
        with pytest.raises(StorageError) as exc_info:
            await repo.search_properties("bondi", 3, 10)
        assert "row count" in exc_info.value.message

    async def test_averages_read_past_row_cap(self) -> None:
        fake = FakePostgrest(max_rows=2)
        repo = SupabasePropertyRepository(BASE_URL, API_KEY, transport=httpx.MockTransport(fake))
        for price in (100, 200, 300, 400, 1000):
            await repo.add_property(_new("bondi", price))

        result = await repo.search_properties("bondi", 1, 1)
        # All five rows count even though each response holds at most two
        assert result.properties[0].suburb_avg == 400

        avg_reqs = [r for r in fake.requests if r.url.params.get("suburb", "").startswith("in.")]
        assert [r.url.params["offset"] for r in avg_reqs] == ["0", "2", "4"]
        assert all(r.headers["prefer"] == "count=exact" for r in avg_reqs)

    async def test_averages_short_read_is_storage_error(self, fake) -> None:
        def truncating(request: httpx.Request) -> httpx.Response:
            if request.url.params.get("suburb", "").startswith("in.") and request.url.params["offset"] != "0":
                # server claims more rows but sends none
                return httpx.Response(200, json=[], headers={"content-range": "*/3"})
            return fake(request)

        fake.max_rows = 2
        repo = SupabasePropertyRepository(BASE_URL, API_KEY, transport=httpx.MockTransport(truncating))
        for price in (100, 200, 300):
            await repo.add_property(_new("bondi", price))
        with pytest.raises(StorageError) as exc_info:
            await repo.search_properties("bondi", 1, 10)
        assert "read 2 of 3 rows" in exc_info.value.message

    async def test_read_failure_is_storage_error(self) -> None:
        transport = httpx.MockTransport(lambda r: httpx.Response(500, json={"message": "boom"}))
        repo = SupabasePropertyRepository(BASE_URL, API_KEY, transport=transport)
        with pytest.raises(StorageError) as exc_info:
            await repo.search_properties(None, 1, 50)
        assert exc_info.value.message == "Failed to search properties"

    async def test_average_failure_is_storage_error(self, fake) -> None:
        def flaky(request: httpx.Request) -> httpx.Response:
            if request.url.params.get("suburb", "").startswith("in."):
                return httpx.Response(503)
            return fake(request)

        repo = SupabasePropertyRepository(BASE_URL, API_KEY, transport=httpx.MockTransport(flaky))
        await repo.add_property(_new("bondi", 100))
        with pytest.raises(StorageError) as exc_info:
            await repo.search_properties(None, 1, 50)
        assert exc_info.value.message == "Failed to calculate suburb averages"


class TestPing:
    async def test_ping_ok(self, supa, fake) -> None:
        await supa.ping()
        assert fake.requests[0].url.params["limit"] == "1"

    async def test_ping_failure(self) -> None:
        transport = httpx.MockTransport(lambda r: httpx.Response(401, json={"message": "bad key"}))
        repo = SupabasePropertyRepository(BASE_URL, API_KEY, transport=transport)
        with pytest.raises(StorageError):
            await repo.ping()


class TestFactory:
    def test_defaults_to_memory(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "REPOSITORY_PROVIDER", "memory")
        assert isinstance(property_repository(), InMemoryPropertyRepository)

    def test_supabase_requires_credentials(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "REPOSITORY_PROVIDER", "supabase")
        monkeypatch.setattr(settings, "SUPABASE_URL", None)
        monkeypatch.setattr(settings, "SUPABASE_KEY", None)
        with pytest.raises(RuntimeError):
            property_repository()

    def test_supabase_selected(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "REPOSITORY_PROVIDER", "supabase")
        monkeypatch.setattr(settings, "SUPABASE_URL", BASE_URL + "/")
        monkeypatch.setattr(settings, "SUPABASE_KEY", API_KEY)
        monkeypatch.setattr(settings, "SUPABASE_TABLE", "listings")
        repo = property_repository()
        assert isinstance(repo, SupabasePropertyRepository)
        assert repo.base_url == BASE_URL + "/rest/v1"
        assert repo.table == "listings"
