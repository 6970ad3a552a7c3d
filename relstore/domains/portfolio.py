"""Portfolio Domain — funds, their portfolio companies and performance metrics.

Invariants:
    - fund.name is unique (case-insensitive)
    - portfolio_company.fund_id is required; fund.portfolio_companies mirrors it
    - performance_metric may point at a fund, a company, both or neither
    - Deleting a fund removes its companies and metrics; deleting a company removes its metrics

Design Decisions:
    - Money and ratio fields are floats: the dashboards only sum and average them
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


class FundPayload(RecordModel):
    name: str = Field(min_length=1, max_length=200)
    vintage: int = Field(default_factory=lambda: dt.date.today().year, ge=1900, le=2100)
    strategy: str = ""
    sector: str = ""
    aum: float = Field(0.0, ge=0)
    nav: float = Field(0.0, ge=0)
    irr: float = 0.0
    moic: float = Field(0.0, ge=0)
    dpi: float = Field(0.0, ge=0)
    tvpi: float = Field(0.0, ge=0)
    status: Literal["Active", "Exited", "Fundraising"] = "Active"


class PortfolioCompanyPayload(RecordModel):
    name: str = Field(min_length=1, max_length=200)
    fund_id: str = ""
    sector: str = ""
    investment_date: dt.date | None = None
    investment_amount: float = Field(0.0, ge=0)
    current_value: float = Field(0.0, ge=0)
    revenue: float = 0.0
    ebitda: float = 0.0
    revenue_growth: float = 0.0
    ebitda_margin: float = 0.0
    status: Literal["Active", "Exited", "In Trouble"] = "Active"
    exit_date: dt.date | None = None
    exit_value: float | None = Field(None, ge=0)


class PerformanceMetricPayload(RecordModel):
    fund_id: str = ""
    company_id: str = ""
    date: dt.date
    revenue: float = 0.0
    ebitda: float = 0.0
    cashflow: float = 0.0
    valuation: float = 0.0
    employee_count: int = Field(0, ge=0)


def _seed() -> Snapshot:
    return {
        "fund": [
            {
                "id": "fund-growth-1", "name": "Growth Equity Fund I",
                "vintage": 2019, "strategy": "Growth Equity", "sector": "Technology",
                "aum": 500.0, "nav": 420.0, "irr": 18.5, "moic": 1.9,
                "dpi": 0.6, "tvpi": 1.9, "status": "Active",
                "portfolio_companies": ["co-cloudnine"],
            },
            {
                "id": "fund-buyout-2", "name": "Buyout Fund II",
                "vintage": 2016, "strategy": "Buyout", "sector": "Healthcare",
                "aum": 800.0, "nav": 310.0, "irr": 12.0, "moic": 2.3,
                "dpi": 1.7, "tvpi": 2.3, "status": "Exited",
                "portfolio_companies": ["co-medisys"],
            },
        ],
        "portfolio_company": [
            {
                "id": "co-cloudnine", "name": "CloudNine Analytics",
                "fund_id": "fund-growth-1", "sector": "Technology",
                "investment_date": "2020-03-15", "investment_amount": 40.0,
                "current_value": 95.0, "revenue": 32.0, "ebitda": 6.5,
                "revenue_growth": 41.0, "ebitda_margin": 20.3, "status": "Active",
                "exit_date": None, "exit_value": None,
            },
            {
                "id": "co-medisys", "name": "MediSys Health",
                "fund_id": "fund-buyout-2", "sector": "Healthcare",
                "investment_date": "2017-06-01", "investment_amount": 120.0,
                "current_value": 0.0, "revenue": 210.0, "ebitda": 38.0,
                "revenue_growth": 8.0, "ebitda_margin": 18.1, "status": "Exited",
                "exit_date": "2023-09-30", "exit_value": 290.0,
            },
        ],
        "performance_metric": [
            {
                "id": "metric-cloudnine-2024q1", "fund_id": "fund-growth-1",
                "company_id": "co-cloudnine", "date": "2024-03-31",
                "revenue": 8.1, "ebitda": 1.6, "cashflow": 1.1,
                "valuation": 92.0, "employee_count": 240,
            },
        ],
    }


SCHEMA = StoreSchema(
    name="portfolio",
    entities=(
        entity(
            "fund", FundPayload,
            unique=(UniqueField("name"),),
            search=("name", "strategy", "sector"),
            status_field="status",
        ),
        entity(
            "portfolio_company", PortfolioCompanyPayload,
            foreign_keys=(ForeignKey("fund_id", "fund"),),
            search=("name", "sector"),
            date_field="investment_date",
            status_field="status",
        ),
        entity(
            "performance_metric", PerformanceMetricPayload,
            foreign_keys=(
                ForeignKey("fund_id", "fund"),
                ForeignKey("company_id", "portfolio_company"),
            ),
            date_field="date",
        ),
    ),
    back_references=(
        BackReference("fund", "portfolio_companies", "portfolio_company", "fund_id"),
    ),
    cascade_rules=(
        CascadeRule("fund", "portfolio_company", "fund_id", HARD),
        CascadeRule("fund", "performance_metric", "fund_id", HARD),
        CascadeRule("portfolio_company", "performance_metric", "company_id", HARD),
    ),
    seed=_seed,
)
