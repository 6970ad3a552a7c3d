"""Payload Normalization — tests for create/update validation against per-kind models.

Tests cover:
    - Defaults filled, dates dumped as ISO strings
    - `id` and back-reference fields rejected with field-level detail
    - Unknown fields and bad types rejected
    - Partial updates return changed fields only, re-validated against the full model
    - Derived fields (task completed_at) follow their source field
"""

import pytest
from pydantic import ValidationError

from relstore.core.errors import PayloadValidationError
from relstore.core.payloads import normalize_create, normalize_update, partial_model
from relstore.domains import portfolio, tasks
from relstore.domains.portfolio import FundPayload

PF = portfolio.SCHEMA


def test_create_fills_defaults_and_dumps_dates_as_strings():
    record = normalize_create(PF, "portfolio_company", {
        "name": " Acme ", "fund_id": "f1", "investment_date": "2021-04-01",
    })
    assert record["name"] == "Acme"
    assert record["status"] == "Active"
    assert record["investment_date"] == "2021-04-01"
    assert record["exit_value"] is None


def test_create_rejects_identifier_and_back_reference_fields():
    with pytest.raises(PayloadValidationError) as exc_info:
        normalize_create(PF, "fund", {"name": "A", "id": "x", "portfolio_companies": []})
    assert exc_info.value.fields == ["id", "portfolio_companies"]


def test_create_reports_every_bad_field():
    with pytest.raises(PayloadValidationError) as exc_info:
        normalize_create(PF, "fund", {"name": "", "aum": "lots", "colour": "red"})
    assert set(exc_info.value.fields) == {"name", "aum", "colour"}
    assert exc_info.value.http_status == 400


def test_create_rejects_non_object_payload():
    with pytest.raises(PayloadValidationError) as exc_info:
        normalize_create(PF, "fund", ["name"])
    assert exc_info.value.fields == ["__root__"]


def test_partial_model_makes_every_field_optional():
    model = partial_model(FundPayload)
    assert model.model_validate({}).model_dump(exclude_unset=True) == {}
    with pytest.raises(ValidationError):
        model.model_validate({"unknown": 1})


def test_update_returns_only_changed_fields():
    existing = {"id": "f1", "portfolio_companies": [], **normalize_create(PF, "fund", {"name": "A"})}
    changes = normalize_update(PF, "fund", existing, {"aum": "250"})
    assert changes == {"aum": 250.0}


def test_update_revalidates_constraints_on_merged_record():
    existing = {"id": "f1", **normalize_create(PF, "fund", {"name": "A"})}
    with pytest.raises(PayloadValidationError) as exc_info:
        normalize_update(PF, "fund", existing, {"nav": -5})
    assert exc_info.value.fields == ["nav"]


def test_update_rejects_null_for_required_field():
    existing = {"id": "f1", **normalize_create(PF, "fund", {"name": "A"})}
    with pytest.raises(PayloadValidationError):
        normalize_update(PF, "fund", existing, {"name": None})


def test_update_carries_derived_field_changes():
    existing = {"id": "t1", **normalize_create(tasks.SCHEMA, "task", {"title": "T", "completed": True})}
    assert existing["completed_at"] is not None

    changes = normalize_update(tasks.SCHEMA, "task", existing, {"completed": False})

    assert changes == {"completed": False, "completed_at": None}
