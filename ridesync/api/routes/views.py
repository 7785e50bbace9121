"""
Read-only views
===============

GET /api/v1/feed                    -- open rides waiting for a provider
GET /api/v1/history/{identity}      -- every ride an identity took part in
GET /api/v1/sessions/{identity}     -- derived phase + current ride

All three are computed from the latest snapshot published by the ledger
adapter; nothing here touches the ledger directly.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ridesync.api.dependencies import get_ledger, get_queries
from ridesync.api.middleware import limiter
from ridesync.api.schemas import RideResponse, SessionResponse
from ridesync.domain.enums import Role
from ridesync.domain.ledger import LedgerAdapter
from ridesync.domain.queries import QueryService
from ridesync.domain.reconciliation import reconcile

router = APIRouter(tags=["views"])


@router.get(
    "/feed",
    response_model=list[RideResponse],
    summary="Open ride offers, newest first",
)
@limiter.limit("100/minute")
async def feed(
    request: Request,
    provider: Optional[str] = Query(
        None, description="Hide this provider's own requests from the feed."
    ),
    queries: QueryService = Depends(get_queries),
):
    if provider:
        return queries.feed_for_provider(provider)
    return queries.feed()


@router.get(
    "/history/{identity}",
    response_model=list[RideResponse],
    summary="Rides an identity requested or provided, newest first",
)
@limiter.limit("100/minute")
async def history(
    request: Request,
    identity: str,
    queries: QueryService = Depends(get_queries),
):
    return queries.history(identity)


@router.get(
    "/sessions/{identity}",
    response_model=SessionResponse,
    summary="Derived lifecycle phase for an identity",
)
@limiter.limit("100/minute")
async def session_phase(
    request: Request,
    identity: str,
    role: Role = Query(Role.REQUESTER),
    ledger: LedgerAdapter = Depends(get_ledger),
):
    result = reconcile(ledger.snapshot, identity, role)
    return SessionResponse(
        identity=identity,
        role=role,
        phase=result.phase,
        ride=RideResponse.model_validate(result.record) if result.record else None,
    )
