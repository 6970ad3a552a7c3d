"""Store Schema — declarative description of entity kinds and their relationships.

Invariants:
    - Every single-valued foreign key has exactly one CascadeRule (no missed cascade path)
    - A required foreign key can never be soft-orphaned (clearing it would break the record)
    - Back-reference lists always mirror a declared single-valued foreign key
    - Multi-valued references are detached (id removed) on target delete — no rule needed

Design Decisions:
    - Frozen dataclasses, validated once in __post_init__: a broken table fails at import,
      not at the first delete (ADR: fail fast on configuration)
    - Cascade policy is a table, not per-entity handler code: one generic engine consumes it
"""

from dataclasses import dataclass, field, replace
from typing import Callable

from pydantic import BaseModel

from relstore.core.domain_types import CascadePolicy, Snapshot
from relstore.core.errors import UnknownKindError


@dataclass(frozen=True)
class ForeignKey:
    """A field holding the id of another entity (or a list of ids when many=True)."""
    field: str
    target: str
    required: bool = False
    many: bool = False


@dataclass(frozen=True)
class UniqueField:
    field: str
    case_insensitive: bool = True


@dataclass(frozen=True)
class BackReference:
    """parent.<field> lists the ids of children whose <child_field> points at parent."""
    parent: str
    field: str
    child: str
    child_field: str


@dataclass(frozen=True)
class CascadeRule:
    parent: str
    dependent: str
    field: str
    policy: CascadePolicy


@dataclass(frozen=True)
class EntitySpec:
    """One entity kind: payload models plus relationship metadata."""
    kind: str
    create_model: type[BaseModel]
    update_model: type[BaseModel]
    foreign_keys: tuple[ForeignKey, ...] = ()
    unique: tuple[UniqueField, ...] = ()
    search_fields: tuple[str, ...] = ()
    date_field: str | None = None
    status_field: str | None = None

    def foreign_key(self, field_name: str) -> ForeignKey | None:
        for fk in self.foreign_keys:
            if fk.field == field_name:
                return fk
        return None


@dataclass(frozen=True)
class StoreSchema:
    """A complete domain: kinds, back-references, cascade table, seed data."""
    name: str
    entities: tuple[EntitySpec, ...]
    back_references: tuple[BackReference, ...] = ()
    cascade_rules: tuple[CascadeRule, ...] = ()
    seed: Callable[[], Snapshot] = field(default=lambda: {})

    def __post_init__(self):
        kinds = {spec.kind for spec in self.entities}
        if len(kinds) != len(self.entities):
            raise ValueError(f"Duplicate entity kind in schema '{self.name}'")
        for spec in self.entities:
            for fk in spec.foreign_keys:
                if fk.target not in kinds:
                    raise ValueError(
                        f"{spec.kind}.{fk.field} targets unknown kind '{fk.target}'",
                    )
                if not fk.many:
                    self._check_rule(spec, fk)
        for ref in self.back_references:
            child_fk = self.spec(ref.child).foreign_key(ref.child_field)
            if child_fk is None or child_fk.many or child_fk.target != ref.parent:
                raise ValueError(
                    f"Back-reference {ref.parent}.{ref.field} has no matching "
                    f"single foreign key {ref.child}.{ref.child_field}",
                )

    def _check_rule(self, spec: EntitySpec, fk: ForeignKey) -> None:
        rules = [
            r for r in self.cascade_rules
            if r.dependent == spec.kind and r.field == fk.field
        ]
        if len(rules) != 1 or rules[0].parent != fk.target:
            raise ValueError(
                f"{spec.kind}.{fk.field} needs exactly one cascade rule "
                f"from '{fk.target}' (found {len(rules)})",
            )
        if fk.required and rules[0].policy == CascadePolicy.SOFT_ORPHAN:
            raise ValueError(
                f"{spec.kind}.{fk.field} is required and cannot be soft-orphaned",
            )

    # --- Lookups --------------------------------------------------------------

    @property
    def kinds(self) -> list[str]:
        return [spec.kind for spec in self.entities]

    def spec(self, kind: str) -> EntitySpec:
        for spec in self.entities:
            if spec.kind == kind:
                return spec
        raise UnknownKindError(kind)

    def has_kind(self, kind: str) -> bool:
        return any(spec.kind == kind for spec in self.entities)

    def back_refs_of_parent(self, kind: str) -> list[BackReference]:
        return [r for r in self.back_references if r.parent == kind]

    def back_refs_of_child(self, kind: str) -> list[BackReference]:
        return [r for r in self.back_references if r.child == kind]

    def managed_fields(self, kind: str) -> set[str]:
        """Fields the integrity engine owns; payloads may not set them."""
        return {r.field for r in self.back_refs_of_parent(kind)}

    def rules_for_parent(self, kind: str) -> list[CascadeRule]:
        return [r for r in self.cascade_rules if r.parent == kind]

    def multi_refs_to(self, kind: str) -> list[tuple[str, ForeignKey]]:
        """(dependent kind, fk) pairs whose id lists may mention `kind`."""
        return [
            (spec.kind, fk)
            for spec in self.entities
            for fk in spec.foreign_keys
            if fk.many and fk.target == kind
        ]

    def with_overrides(self, overrides: dict[str, str]) -> "StoreSchema":
        """Replace cascade policies. Keys: '<parent>.<dependent>.<field>'."""
        if not overrides:
            return self
        rules = list(self.cascade_rules)
        for key, policy in overrides.items():
            try:
                parent, dependent, field_name = key.split(".")
            except ValueError:
                raise ValueError(f"Invalid cascade override key '{key}'")
            for i, rule in enumerate(rules):
                if (rule.parent, rule.dependent, rule.field) == (parent, dependent, field_name):
                    rules[i] = replace(rule, policy=CascadePolicy(policy))
                    break
            else:
                raise ValueError(f"No cascade rule matches override '{key}'")
        return replace(self, cascade_rules=tuple(rules))
