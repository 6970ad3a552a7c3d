"""Bundled domain schemas, looked up by name."""

from relstore.core.domain_types import DomainName
from relstore.core.schema import StoreSchema
from relstore.domains import fleet, lab, portfolio, tasks

SCHEMAS: dict[DomainName, StoreSchema] = {
    DomainName.PORTFOLIO: portfolio.SCHEMA,
    DomainName.FLEET: fleet.SCHEMA,
    DomainName.LAB: lab.SCHEMA,
    DomainName.TASKS: tasks.SCHEMA,
}


def get_schema(name: str, cascade_overrides: dict[str, str] | None = None) -> StoreSchema:
    """Schema for a domain name, with optional cascade policy overrides applied."""
    try:
        schema = SCHEMAS[DomainName(name)]
    except ValueError:
        raise ValueError(
            f"Unknown domain '{name}' (expected one of {', '.join(d.value for d in DomainName)})",
        )
    return schema.with_overrides(cascade_overrides or {})
