"""Entity Store — tests for low-level CRUD primitives and identifier generation.

Tests cover:
    - create assigns an id and defaults back-reference lists to []
    - IdGenerator: unique, never goes backwards
    - Identifier collision is an internal error, never silently ignored
    - update is a shallow merge; `id` cannot change
    - delete returns the removed record; cascade is not its job
    - list/get return copies in insertion order
    - Unknown kinds raise UnknownKindError
"""

import itertools

import pytest

from relstore.core.entity_store import EntityStore, IdGenerator
from relstore.core.errors import (
    EntityNotFoundError, IdentifierCollisionError, UnknownKindError,
)
from relstore.domains.portfolio import SCHEMA


def _store(**kwargs) -> EntityStore:
    counter = itertools.count(1)
    kwargs.setdefault("id_factory", lambda: f"id{next(counter)}")
    return EntityStore(SCHEMA, **kwargs)


# -- create --------------------------------------------------------------------

def test_create_assigns_id_and_empty_back_reference_list():
    store = _store()
    fund_id = store.create("fund", {"name": "Alpha"})

    record = store.get("fund", fund_id)
    assert record["id"] == fund_id
    assert record["portfolio_companies"] == []
    assert record["name"] == "Alpha"


def test_create_does_not_alias_payload():
    store = _store()
    payload = {"name": "Alpha", "tags": ["a"]}
    fund_id = store.create("fund", payload)
    payload["tags"].append("b")

    assert store.get("fund", fund_id)["tags"] == ["a"]
    assert "id" not in payload


def test_identifier_collision_raises_and_keeps_store_unchanged():
    store = _store(id_factory=lambda: "same")
    store.create("fund", {"name": "Alpha"})

    with pytest.raises(IdentifierCollisionError):
        store.create("fund", {"name": "Beta"})
    assert store.count("fund") == 1


def test_id_generator_is_unique_and_monotonic():
    generate = IdGenerator()
    ids = [generate() for _ in range(2000)]

    assert len(set(ids)) == len(ids)
    stamps = [int(i.split("-")[0], 16) for i in ids]
    assert stamps == sorted(stamps)


# -- update / delete -----------------------------------------------------------

def test_update_merges_shallowly_and_keeps_id():
    store = _store()
    fund_id = store.create("fund", {"name": "Alpha", "aum": 10.0})

    updated = store.update("fund", fund_id, {"id": "hijack", "aum": 20.0})

    assert updated["id"] == fund_id
    assert updated["aum"] == 20.0
    assert updated["name"] == "Alpha"
    assert not store.exists("fund", "hijack")


def test_update_missing_record_raises_not_found():
    store = _store()
    with pytest.raises(EntityNotFoundError) as exc_info:
        store.update("fund", "nope", {"aum": 1.0})
    assert exc_info.value.http_status == 404
    assert exc_info.value.context.entity_id == "nope"


def test_delete_returns_removed_record_only():
    store = _store()
    fund_id = store.create("fund", {"name": "Alpha"})
    company_id = store.create("portfolio_company", {"name": "C", "fund_id": fund_id})

    removed = store.delete("fund", fund_id)

    assert removed["name"] == "Alpha"
    assert not store.exists("fund", fund_id)
    # no cascade at this layer
    assert store.get("portfolio_company", company_id)["fund_id"] == fund_id


def test_delete_missing_record_raises_not_found():
    with pytest.raises(EntityNotFoundError):
        _store().delete("fund", "nope")


# -- reads ---------------------------------------------------------------------

def test_list_is_insertion_ordered_copy():
    store = _store()
    ids = [store.create("fund", {"name": n}) for n in ("A", "B", "C")]

    listed = store.list("fund")
    listed[0]["name"] = "mutated"
    listed.pop()

    assert [r["id"] for r in store.list("fund")] == ids
    assert store.get("fund", ids[0])["name"] == "A"


def test_find_returns_none_for_missing():
    assert _store().find("fund", "nope") is None


def test_unknown_kind_raises():
    with pytest.raises(UnknownKindError):
        _store().list("spaceship")


def test_replace_all_ignores_unknown_kinds():
    store = _store(collections={
        "fund": [{"id": "f1", "name": "A", "portfolio_companies": []}],
        "spaceship": [{"id": "s1"}],
    })
    assert store.ids("fund") == ["f1"]
    assert set(store.snapshot()) == set(SCHEMA.kinds)
