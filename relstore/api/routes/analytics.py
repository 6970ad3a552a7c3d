"""Analytics Routes — read-only summaries computed from the live store.

Invariants:
    - Never mutates; every call recomputes from current collections
    - View parameters arrive as query parameters and are validated by the facade
"""

from fastapi import APIRouter, Depends, Request

from relstore.api.dependencies import get_facade
from relstore.services.command_facade import CommandFacade

router = APIRouter(prefix="/api/v1/analytics", tags=["analytics"])


@router.get("/{view}")
async def summarize(
    view: str, request: Request, facade: CommandFacade = Depends(get_facade),
):
    """e.g. /analytics/weighted-average?kind=fund&metric=irr&weight=nav"""
    return facade.summarize(view, dict(request.query_params))
