"""Lab Domain — research projects, molecules, experiments and notebook notes.

Invariants:
    - project.name is unique; project.molecule_ids mirrors molecule.project_id
    - Experiments and notes belong to exactly one project and die with it
    - Molecules outlive their project (project_id cleared)
    - experiment.molecule_ids, note.molecule_ids and note.experiment_ids are detached,
      never left dangling, when a molecule or experiment is deleted
"""

import datetime as dt
from typing import Literal

from pydantic import Field

from relstore.core.domain_types import CascadePolicy, Snapshot
from relstore.core.schema import (
    BackReference, CascadeRule, ForeignKey, StoreSchema, UniqueField,
)
from relstore.domains.common import RecordModel, entity

HARD = CascadePolicy.HARD_CASCADE
SOFT = CascadePolicy.SOFT_ORPHAN


class ProjectPayload(RecordModel):
    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    lead: str = ""
    collaborators: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    start_date: dt.date | None = None
    status: Literal["Planning", "Active", "On Hold", "Completed"] = "Active"


class MoleculePayload(RecordModel):
    name: str = Field(min_length=1, max_length=200)
    smiles: str = ""
    formula: str = ""
    mol_weight: float = Field(0.0, ge=0)
    category: str = ""
    project_id: str = ""
    status: Literal["Candidate", "Synthesized", "Tested", "Discarded"] = "Candidate"
    created_at: dt.date = Field(default_factory=dt.date.today)


class ExperimentPayload(RecordModel):
    title: str = Field(min_length=1, max_length=200)
    project_id: str
    molecule_ids: list[str] = Field(default_factory=list)
    type: str = ""
    date: dt.date = Field(default_factory=dt.date.today)
    results: str = ""
    conclusion: str = ""
    performers: list[str] = Field(default_factory=list)
    status: Literal["Planned", "Running", "Completed", "Failed"] = "Planned"


class NotePayload(RecordModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = ""
    project_id: str
    molecule_ids: list[str] = Field(default_factory=list)
    experiment_ids: list[str] = Field(default_factory=list)
    author: str = ""
    created_at: dt.date = Field(default_factory=dt.date.today)


def _seed() -> Snapshot:
    return {
        "project": [
            {
                "id": "prj-kinase", "name": "Kinase Inhibitor Screening",
                "description": "", "lead": "Dr. Sato",
                "collaborators": ["R. Iyer"], "tags": ["oncology"],
                "start_date": "2024-01-08", "status": "Active",
                "molecule_ids": ["mol-ki-001"],
            },
        ],
        "molecule": [
            {
                "id": "mol-ki-001", "name": "KI-001", "smiles": "c1ccc2ncccc2c1",
                "formula": "C9H7N", "mol_weight": 129.16, "category": "Quinoline",
                "project_id": "prj-kinase", "status": "Synthesized",
                "created_at": "2024-01-20",
            },
        ],
        "experiment": [
            {
                "id": "exp-assay-1", "title": "IC50 assay", "project_id": "prj-kinase",
                "molecule_ids": ["mol-ki-001"], "type": "Binding assay",
                "date": "2024-02-12", "results": "", "conclusion": "",
                "performers": ["R. Iyer"], "status": "Completed",
            },
        ],
        "note": [],
    }


SCHEMA = StoreSchema(
    name="lab",
    entities=(
        entity(
            "project", ProjectPayload,
            unique=(UniqueField("name"),),
            search=("name", "description", "lead", "collaborators", "tags"),
            date_field="start_date",
            status_field="status",
        ),
        entity(
            "molecule", MoleculePayload,
            foreign_keys=(ForeignKey("project_id", "project"),),
            search=("name", "smiles", "formula", "category"),
            date_field="created_at",
            status_field="status",
        ),
        entity(
            "experiment", ExperimentPayload,
            foreign_keys=(
                ForeignKey("project_id", "project", required=True),
                ForeignKey("molecule_ids", "molecule", many=True),
            ),
            search=("title", "type", "results", "conclusion", "performers"),
            date_field="date",
            status_field="status",
        ),
        entity(
            "note", NotePayload,
            foreign_keys=(
                ForeignKey("project_id", "project", required=True),
                ForeignKey("molecule_ids", "molecule", many=True),
                ForeignKey("experiment_ids", "experiment", many=True),
            ),
            search=("title", "content", "author"),
            date_field="created_at",
        ),
    ),
    back_references=(
        BackReference("project", "molecule_ids", "molecule", "project_id"),
    ),
    cascade_rules=(
        CascadeRule("project", "molecule", "project_id", SOFT),
        CascadeRule("project", "experiment", "project_id", HARD),
        CascadeRule("project", "note", "project_id", HARD),
    ),
    seed=_seed,
)
