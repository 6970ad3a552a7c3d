"""Command Facade — tests for the command pipeline, lifecycle and read APIs.

Tests cover:
    - Worked portfolio scenarios: back-reference sync, reassignment, cascade, dangling key
    - Rejected commands come back as results and leave store and snapshot untouched
    - A failing snapshot write is a warning; memory keeps the committed change
    - open() reconciles a damaged snapshot and persists the repair; close() persists
    - After a failed load nothing is saved until a reload succeeds
    - query() validates filter/sort fields; summarize() validates view parameters
"""

import pytest

from relstore.core.domain_types import CommandOp
from relstore.core.errors import (
    EntityNotFoundError, PayloadValidationError, UnknownKindError,
)
from relstore.domains import get_schema
from relstore.models.snapshot_record import SnapshotRecord
from relstore.services.command_facade import CommandFacade
from tests.consistency import assert_consistent
from tests.services.fakes import FailingAdapter, FlakyLoadAdapter, MemoryAdapter, counter_ids


def _create(facade, kind, **payload):
    result = facade.execute(kind, CommandOp.CREATE, payload=payload)
    assert result.ok, result.error
    return result.entity_id


@pytest.fixture
def pf(make_facade):
    return make_facade("portfolio", seed=False)


# ─── Commands ────────────────────────────────────────────────

def test_portfolio_scenarios_end_to_end(pf):
    f1 = _create(pf, "fund", name="F1", aum=100)
    f2 = _create(pf, "fund", name="F2")
    c1 = _create(pf, "portfolio_company", name="C1", fund_id=f1)
    assert pf.get("fund", f1)["portfolio_companies"] == [c1]

    pf.execute("portfolio_company", "update", c1, {"fund_id": f2})
    assert pf.get("fund", f1)["portfolio_companies"] == []
    assert pf.get("fund", f2)["portfolio_companies"] == [c1]

    c2 = _create(pf, "portfolio_company", name="C2", fund_id=f1)
    result = pf.execute("fund", "delete", f1)

    assert result.ok
    assert result.cascaded.deleted == [("portfolio_company", c2)]
    assert not pf.store.exists("portfolio_company", c2)
    assert all(c["fund_id"] != f1 for c in pf.store.list("portfolio_company"))
    assert_consistent(pf.store)


def test_dangling_reference_is_rejected_without_change(pf):
    before = pf.store.count("portfolio_company")

    result = pf.execute("portfolio_company", "create", payload={
        "name": "Ghost", "fund_id": "nonexistent",
    })

    assert not result.ok
    assert result.error.code == "REFERENTIAL_ERROR"
    assert result.error.context.command == "create"
    assert pf.store.count("portfolio_company") == before


def test_soft_orphan_keeps_dependents(make_facade):
    fleet = make_facade("fleet", seed=False)
    vehicle = _create(fleet, "vehicle", plate_number="TRK-1")
    driver = _create(fleet, "driver", name="Alex", license_number="DL-1", vehicle_id=vehicle)
    service = _create(fleet, "maintenance_record", vehicle_id=vehicle,
                      service_type="Tyres", date="2024-05-01")

    result = fleet.execute("vehicle", "delete", vehicle)

    assert fleet.get("driver", driver)["vehicle_id"] == ""
    assert not fleet.store.exists("maintenance_record", service)
    assert result.cascaded.orphaned == [("driver", driver, "vehicle_id")]


def test_fund_delete_with_soft_orphan_override_keeps_companies(make_facade):
    pf = make_facade(
        "portfolio", seed=False,
        overrides={"fund.portfolio_company.fund_id": "soft_orphan"},
    )
    f1 = _create(pf, "fund", name="F1")
    c1 = _create(pf, "portfolio_company", name="C1", fund_id=f1)
    c2 = _create(pf, "portfolio_company", name="C2", fund_id=f1)

    result = pf.execute("fund", "delete", f1)

    assert result.ok
    assert pf.get("portfolio_company", c2)["fund_id"] == ""
    assert {(k, i) for k, i, _ in result.cascaded.orphaned} == {
        ("portfolio_company", c1), ("portfolio_company", c2),
    }
    assert_consistent(pf.store)


def test_rejected_command_does_not_persist():
    adapter = MemoryAdapter()
    facade = CommandFacade(get_schema("tasks"), adapter, id_factory=counter_ids())
    facade.open()

    result = facade.execute("task", "create", payload={"title": ""})

    assert not result.ok
    assert result.error.fields == ["title"]
    assert adapter.saves == 0


def test_unknown_targets_and_ops_are_results_not_exceptions(pf):
    assert pf.execute("fund", "update", "missing", {"aum": 1}).error.code == "ENTITY_NOT_FOUND"
    assert pf.execute("spaceship", "create", payload={}).error.code == "UNKNOWN_KIND"
    assert pf.execute("fund", "upsert", payload={}).error.fields == ["op"]
    assert pf.execute("fund", "delete").error.fields == ["id"]


def test_update_returns_merged_record(pf):
    f1 = _create(pf, "fund", name="F1", aum=100)

    result = pf.execute("fund", "update", f1, {"nav": 80})

    assert result.record["aum"] == 100.0
    assert result.record["nav"] == 80.0
    assert result.record["portfolio_companies"] == []


def test_failed_save_is_warning_and_change_stays_in_memory():
    facade = CommandFacade(get_schema("portfolio"), FailingAdapter(), id_factory=counter_ids())
    facade.open()

    result = facade.execute("fund", "create", payload={"name": "F1"})

    assert result.ok
    assert [w.code for w in result.warnings] == ["PERSISTENCE_ERROR"]
    assert facade.get("fund", result.entity_id)["name"] == "F1"


# ─── Lifecycle ───────────────────────────────────────────────

def test_open_from_seed_persists_nothing_when_clean(make_facade, test_session_factory):
    facade = make_facade("portfolio")

    assert facade.opened
    assert facade.store.count("fund") == 2
    with test_session_factory() as db:
        assert db.get(SnapshotRecord, "portfolio") is None


def test_open_reconciles_damaged_snapshot_and_saves_repair():
    damaged = {
        "fund": [{"id": "f1", "name": "F1", "portfolio_companies": ["ghost"]}],
        "portfolio_company": [
            {"id": "c1", "name": "C1", "fund_id": "f1"},
            {"id": "c2", "name": "C2", "fund_id": "gone"},
        ],
        "performance_metric": [],
    }
    adapter = MemoryAdapter(damaged)
    facade = CommandFacade(get_schema("portfolio"), adapter)

    report = facade.open()

    assert report.repairs
    assert adapter.saves == 1
    assert not facade.store.exists("portfolio_company", "c2")
    assert facade.get("fund", "f1")["portfolio_companies"] == ["c1"]
    assert_consistent(facade.store)


def test_open_with_unreadable_storage_starts_empty():
    facade = CommandFacade(get_schema("tasks"), FailingAdapter(fail_load=True))

    report = facade.open()

    assert facade.opened
    assert facade.store.count("category") == 0
    assert report.warnings[0].code == "PERSISTENCE_ERROR"
    assert not facade.durable


_STORED_TASKS = {
    "category": [{"id": "c1", "name": "Home", "color": "#6b7280"}],
    "task": [{"id": "t1", "title": "Water plants", "category_id": "c1"}],
}


def test_command_after_failed_open_reloads_before_saving():
    adapter = FlakyLoadAdapter(_STORED_TASKS, load_failures=1)
    facade = CommandFacade(get_schema("tasks"), adapter, id_factory=counter_ids())
    facade.open()
    assert not facade.durable

    result = facade.execute("category", "create", payload={"name": "Errands"})

    assert result.ok
    assert facade.durable
    assert [t["id"] for t in adapter.snapshot["task"]] == ["t1"]
    assert [c["name"] for c in adapter.snapshot["category"]] == ["Home", "Errands"]


def test_command_rejected_while_snapshot_stays_unreadable():
    adapter = FlakyLoadAdapter(_STORED_TASKS, load_failures=2)
    facade = CommandFacade(get_schema("tasks"), adapter, id_factory=counter_ids())
    facade.open()

    result = facade.execute("category", "create", payload={"name": "Errands"})

    assert not result.ok
    assert result.error.code == "PERSISTENCE_ERROR"
    assert result.error.context.command == "create"
    assert adapter.saves == 0
    assert facade.store.count("category") == 0
    assert facade.close() == []
    assert adapter.saves == 0
    assert adapter.snapshot is _STORED_TASKS


def test_close_persists_final_state():
    adapter = MemoryAdapter()
    facade = CommandFacade(get_schema("tasks"), adapter, id_factory=counter_ids())
    facade.open()
    facade.execute("category", "create", payload={"name": "Errands"})

    assert facade.close() == []
    assert not facade.opened
    assert adapter.snapshot["category"][0]["name"] == "Errands"


# ─── Reads ───────────────────────────────────────────────────

def test_query_by_reference_and_status(make_facade):
    facade = make_facade("portfolio")

    items = facade.query("portfolio_company", filters={"fund_id": "fund-growth-1"})
    assert [c["id"] for c in items] == ["co-cloudnine"]

    exited = facade.query("fund", filters={"status": "Exited"}, sort_key="name")
    assert [f["id"] for f in exited] == ["fund-buyout-2"]


def test_query_rejects_unknown_fields(pf):
    with pytest.raises(PayloadValidationError) as exc_info:
        pf.query("fund", filters={"colour": "red"}, sort_key="size", sort_dir="up")
    assert exc_info.value.fields == ["colour", "sort_key", "sort_dir"]

    with pytest.raises(UnknownKindError):
        pf.query("spaceship")


def test_get_missing_raises(pf):
    with pytest.raises(EntityNotFoundError):
        pf.get("fund", "nope")


def test_weighted_average_view(pf):
    _create(pf, "fund", name="F1", nav=100, irr=10)
    _create(pf, "fund", name="F2", nav=300, irr=20)

    result = pf.summarize("weighted-average", {"kind": "fund", "metric": "irr", "weight": "nav"})

    assert result["view"] == "weighted-average"
    assert result["value"] == pytest.approx(17.5)


def test_status_distribution_defaults_to_status_field(make_facade):
    facade = make_facade("portfolio")
    result = facade.summarize("status-distribution", {"kind": "fund"})
    assert result["counts"] == {"Active": 1, "Exited": 1}


def test_children_of_view(make_facade):
    facade = make_facade("portfolio")
    result = facade.summarize("children-of", {
        "kind": "performance_metric", "field": "company_id", "parent_id": "co-cloudnine",
    })
    assert result["parent_kind"] == "portfolio_company"
    assert result["count"] == 1

    with pytest.raises(EntityNotFoundError):
        facade.summarize("children-of", {
            "kind": "performance_metric", "field": "company_id", "parent_id": "nope",
        })


def test_time_series_and_due_items(make_facade):
    fleet = make_facade("fleet")

    series = fleet.summarize("time-series", {"kinds": "maintenance_record", "date_field": "date"})
    assert series["series"] == [{"bucket": "2024-05", "maintenance_record": 1}]

    due = fleet.summarize("due-items", {"kind": "maintenance_record", "as_of": "2024-12-01"})
    assert [r["id"] for r in due["items"]] == ["mnt-1"]
    closed = fleet.summarize("due-items", {
        "kind": "maintenance_record", "as_of": "2024-12-01", "closed": "Completed",
    })
    assert closed["count"] == 0


@pytest.mark.parametrize("view, params, bad_field", [
    ("pie-chart", {}, "view"),
    ("totals", {"kind": "fund"}, "fields"),
    ("totals", {"kind": "fund", "fields": "nav,size"}, "fields"),
    ("group-sum", {"group_by": "sector", "value": "nav"}, "kind"),
    ("time-series", {"kinds": "fund", "granularity": "week"}, "granularity"),
    ("due-items", {"kind": "fund"}, "date_field"),
    ("due-items", {"kind": "portfolio_company", "as_of": "tomorrow"}, "as_of"),
    ("recent-activity", {"limit": "0"}, "limit"),
    ("children-of", {"kind": "portfolio_company", "field": "name", "parent_id": "x"}, "field"),
])
def test_summarize_rejects_bad_parameters(pf, view, params, bad_field):
    with pytest.raises(PayloadValidationError) as exc_info:
        pf.summarize(view, params)
    assert exc_info.value.fields == [bad_field]


def test_reads_do_not_mutate(make_facade):
    facade = make_facade("portfolio")
    before = facade.store.snapshot()

    facade.query("fund", search="fund", sort_key="irr", sort_dir="desc")
    facade.summarize("sector-allocation", {"kind": "portfolio_company", "value": "current_value"})
    facade.summarize("recent-activity", {})

    assert facade.store.snapshot() == before
