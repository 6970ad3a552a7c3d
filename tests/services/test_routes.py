"""HTTP Routes — tests for entities, analytics, transfer and health endpoints.

Tests cover:
    - CRUD over /api/v1/entities with the seeded portfolio store
    - Rejected commands render the structured error envelope with the right status
    - Query parameters: search, repeated where=field:value, sorting
    - Analytics views and parameter errors
    - CSV import/export round trip and undecodable bodies
    - AI extraction endpoint with a fake completer
    - Liveness and readiness probes
"""

from relstore.main import app
from tests.services.fakes import FailingAdapter, FlakyLoadAdapter


# -- Entities ------------------------------------------------------------------

async def test_create_and_get_company(client):
    res = await client.post("/api/v1/entities/portfolio_company", json={
        "name": "Harbor Logistics", "fund_id": "fund-buyout-2",
    })
    assert res.status_code == 201
    body = res.json()
    assert body["record"]["fund_id"] == "fund-buyout-2"
    assert body["warnings"] == []

    fund = (await client.get("/api/v1/entities/fund/fund-buyout-2")).json()
    assert body["id"] in fund["portfolio_companies"]


async def test_create_with_dangling_reference_is_422(client):
    res = await client.post("/api/v1/entities/portfolio_company", json={
        "name": "Ghost", "fund_id": "nonexistent",
    })
    assert res.status_code == 422
    error = res.json()["error"]
    assert error["code"] == "REFERENTIAL_ERROR"
    assert error["context"]["command"] == "create"
    assert error["details"][0]["field"] == "fund_id"


async def test_duplicate_name_is_409(client):
    res = await client.post("/api/v1/entities/fund", json={"name": "growth equity fund i"})
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "UNIQUENESS_VIOLATION"


async def test_invalid_payload_is_400_with_field_details(client):
    res = await client.post("/api/v1/entities/fund", json={"name": "X", "aum": "lots"})
    assert res.status_code == 400
    assert [d["field"] for d in res.json()["error"]["details"]] == ["aum"]


async def test_non_object_body_is_400(client):
    res = await client.post("/api/v1/entities/fund", json=["name"])
    assert res.status_code == 400


async def test_update_and_delete_with_cascade(client):
    res = await client.patch("/api/v1/entities/fund/fund-growth-1", json={"nav": 450})
    assert res.status_code == 200
    assert res.json()["record"]["nav"] == 450.0

    res = await client.delete("/api/v1/entities/fund/fund-growth-1")
    assert res.status_code == 200
    deleted = {(d["kind"], d["id"]) for d in res.json()["cascaded"]["deleted"]}
    assert deleted == {
        ("portfolio_company", "co-cloudnine"),
        ("performance_metric", "metric-cloudnine-2024q1"),
    }

    res = await client.get("/api/v1/entities/portfolio_company/co-cloudnine")
    assert res.status_code == 404


async def test_unknown_kind_and_id_are_404(client):
    assert (await client.get("/api/v1/entities/spaceship")).status_code == 404
    res = await client.delete("/api/v1/entities/fund/nope")
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "ENTITY_NOT_FOUND"


async def test_query_filters_and_sorts(client):
    res = await client.get(
        "/api/v1/entities/fund",
        params={"sort_key": "irr", "sort_dir": "desc"},
    )
    assert [f["id"] for f in res.json()["items"]] == ["fund-growth-1", "fund-buyout-2"]

    res = await client.get(
        "/api/v1/entities/portfolio_company",
        params=[("where", "status:Exited"), ("search", "medi")],
    )
    body = res.json()
    assert body["count"] == 1
    assert body["items"][0]["id"] == "co-medisys"


async def test_malformed_where_is_400(client):
    res = await client.get("/api/v1/entities/fund", params={"where": "status"})
    assert res.status_code == 400
    assert res.json()["error"]["details"][0]["field"] == "where"


async def test_bad_sort_dir_is_request_validation_400(client):
    res = await client.get("/api/v1/entities/fund", params={"sort_dir": "sideways"})
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "VALIDATION_ERROR"


# -- Analytics -----------------------------------------------------------------

async def test_weighted_average_endpoint(client):
    res = await client.get(
        "/api/v1/analytics/weighted-average",
        params={"kind": "fund", "metric": "irr", "weight": "nav"},
    )
    assert res.status_code == 200
    expected = (420 * 18.5 + 310 * 12.0) / (420 + 310)
    assert abs(res.json()["value"] - expected) < 1e-9


async def test_sector_allocation_endpoint(client):
    res = await client.get(
        "/api/v1/analytics/sector-allocation",
        params={"kind": "portfolio_company", "value": "investment_amount"},
    )
    groups = {g["group"]: g["share"] for g in res.json()["allocation"]}
    assert groups == {"Technology": 25.0, "Healthcare": 75.0}


async def test_unknown_view_is_400(client):
    res = await client.get("/api/v1/analytics/pie-chart")
    assert res.status_code == 400


# -- Transfer ------------------------------------------------------------------

async def test_csv_import_then_export(client):
    res = await client.post(
        "/api/v1/transfer/fund/import",
        params={"fmt": "csv"},
        content="name,aum,status\nFund III,150,Fundraising\n,10,Active\n".encode(),
    )
    assert res.status_code == 200
    report = res.json()
    assert report["created_count"] == 1
    assert report["skipped"][0]["row"] == 3

    res = await client.get(
        "/api/v1/transfer/fund/export", params={"fmt": "csv", "where": "status:Fundraising"},
    )
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/csv")
    assert 'filename="fund.csv"' in res.headers["content-disposition"]
    assert "Fund III" in res.text
    assert "Buyout Fund II" not in res.text


async def test_import_rejects_non_utf8_body(client):
    res = await client.post(
        "/api/v1/transfer/fund/import", params={"fmt": "csv"}, content=b"name\n\xff\xfe\n",
    )
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "DECODE_ERROR"


async def test_export_json(client):
    res = await client.get("/api/v1/transfer/portfolio_company/export", params={"fmt": "json"})
    assert res.headers["content-type"].startswith("application/json")
    assert {c["id"] for c in res.json()} == {"co-cloudnine", "co-medisys"}


# -- Extraction ----------------------------------------------------------------

async def test_extract_endpoint_creates_record(client, completer):
    completer.replies.append('{"name": "Fund IV", "strategy": "Venture", "aum": 75}')

    res = await client.post("/api/v1/entities/fund/extract", json={"text": "Fund IV, venture, $75m"})

    assert res.status_code == 201
    body = res.json()
    assert body["extracted"]["strategy"] == "Venture"
    assert body["record"]["aum"] == 75.0


async def test_extract_endpoint_maps_bad_reply_to_502(client, completer):
    completer.replies.append("no record here")

    res = await client.post("/api/v1/entities/fund/extract", json={"text": "something"})

    assert res.status_code == 502
    assert res.json()["error"]["code"] == "EXTRACTION_ERROR"


async def test_extract_endpoint_rejects_blank_text(client):
    res = await client.post("/api/v1/entities/fund/extract", json={"text": "   "})
    assert res.status_code == 400


# -- Health --------------------------------------------------------------------

async def test_liveness(client):
    res = await client.get("/api/v1/health/")
    assert res.status_code == 200
    assert res.json()["status"] == "healthy"


async def test_readiness_ready(client):
    res = await client.get("/api/v1/health/ready")
    assert res.status_code == 200
    assert res.json()["domain"] == "portfolio"


async def test_readiness_database_unavailable(client, make_facade):
    app.state.facade = make_facade("tasks", adapter=FailingAdapter())
    res = await client.get("/api/v1/health/ready")
    assert res.status_code == 503
    assert res.json()["reason"] == "database_unavailable"


async def test_readiness_store_not_open(client):
    app.state.facade.close()
    res = await client.get("/api/v1/health/ready")
    assert res.status_code == 503
    assert res.json()["reason"] == "store_not_open"


async def test_readiness_snapshot_never_loaded(client, make_facade):
    app.state.facade = make_facade("tasks", adapter=FlakyLoadAdapter(load_failures=5))
    res = await client.get("/api/v1/health/ready")
    assert res.status_code == 503
    assert res.json()["reason"] == "snapshot_not_loaded"
