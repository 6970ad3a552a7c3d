"""Tasks Domain — categories and to-do items."""

import datetime as dt
from typing import Literal

from pydantic import Field, model_validator

from relstore.core.domain_types import CascadePolicy, Snapshot
from relstore.core.schema import CascadeRule, ForeignKey, StoreSchema, UniqueField
from relstore.domains.common import RecordModel, entity

DEFAULT_CATEGORIES = (
    ("cat-work", "Work", "#3b82f6"),
    ("cat-personal", "Personal", "#10b981"),
    ("cat-shopping", "Shopping", "#f59e0b"),
)


class CategoryPayload(RecordModel):
    name: str = Field(min_length=1, max_length=60)
    color: str = Field("#6b7280", pattern=r"^#[0-9a-fA-F]{6}$")


class TaskPayload(RecordModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    category_id: str = ""
    due_date: dt.date | None = None
    priority: Literal["Low", "Medium", "High"] = "Medium"
    completed: bool = False
    created_at: dt.datetime = Field(
        default_factory=lambda: dt.datetime.now(dt.timezone.utc),
    )
    completed_at: dt.datetime | None = None

    @model_validator(mode="after")
    def stamp_completion(self) -> "TaskPayload":
        # completed_at follows the completed flag
        if self.completed and self.completed_at is None:
            self.completed_at = dt.datetime.now(dt.timezone.utc)
        elif not self.completed:
            self.completed_at = None
        return self


def _seed() -> Snapshot:
    return {
        "category": [
            {"id": cid, "name": name, "color": color}
            for cid, name, color in DEFAULT_CATEGORIES
        ],
        "task": [],
    }


SCHEMA = StoreSchema(
    name="tasks",
    entities=(
        entity(
            "category", CategoryPayload,
            unique=(UniqueField("name", case_insensitive=True),),
            search=("name",),
        ),
        entity(
            "task", TaskPayload,
            foreign_keys=(ForeignKey("category_id", "category"),),
            search=("title", "description"),
            date_field="due_date",
            status_field="priority",
        ),
    ),
    cascade_rules=(
        CascadeRule("category", "task", "category_id", CascadePolicy.SOFT_ORPHAN),
    ),
    seed=_seed,
)
