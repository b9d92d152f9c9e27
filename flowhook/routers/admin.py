"""Read-only operational endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from flowhook.config import settings
from flowhook.dependencies import get_ledger
from flowhook.schemas.webhook import DedupStatsResponse
from flowhook.services.dedup_service import DedupLedger

router = APIRouter(prefix="/admin", tags=["admin"])


def _require_admin_token(provided: Optional[str]) -> None:
    expected = settings.admin_token
    if not expected:
        raise HTTPException(status_code=500, detail="ADMIN_TOKEN not configured")
    if not provided or provided != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")


@router.get("/dedup/stats", response_model=DedupStatsResponse)
async def dedup_stats(
    ledger: DedupLedger = Depends(get_ledger),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(x_admin_token)
    return DedupStatsResponse(**await ledger.stats())
