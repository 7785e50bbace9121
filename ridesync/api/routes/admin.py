"""
Admin / observability endpoints
===============================

GET /api/v1/admin/health              -- health check with backend name
GET /api/v1/admin/escrow/{ride_id}    -- escrow dispositions for one ride
"""

from fastapi import APIRouter, Depends, Request

from ridesync.api.dependencies import get_ledger
from ridesync.api.middleware import limiter
from ridesync.api.schemas import EscrowEntryResponse, ErrorResponse, HealthResponse
from ridesync.domain.ledger import LedgerAdapter

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/escrow/{ride_id}",
    response_model=list[EscrowEntryResponse],
    summary="Escrow held / released / refunded for a ride",
    responses={404: {"model": ErrorResponse}},
)
@limiter.limit("100/minute")
async def escrow(
    request: Request,
    ride_id: int,
    ledger: LedgerAdapter = Depends(get_ledger),
):
    return await ledger.escrow_entries(ride_id)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health(ledger: LedgerAdapter = Depends(get_ledger)):
    return HealthResponse(
        backend=ledger.backend, rides_in_view=len(ledger.snapshot)
    )
