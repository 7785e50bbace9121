"""
Ride endpoints
==============

POST /api/v1/rides                    -- request a ride (escrows the amount)
GET  /api/v1/rides                    -- newest rides on the ledger
GET  /api/v1/rides/{ride_id}          -- one ride
POST /api/v1/rides/{ride_id}/accept   -- provider takes an open ride
POST /api/v1/rides/{ride_id}/start    -- provider starts the trip
POST /api/v1/rides/{ride_id}/complete -- requester confirms arrival
POST /api/v1/rides/{ride_id}/cancel   -- requester or provider cancels (refund)
POST /api/v1/rides/{ride_id}/rate     -- requester rates the provider once

Every mutation goes through the ``TransitionGate``; domain errors are
translated to HTTP by the handlers registered in ``create_app``.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from ridesync.api.dependencies import get_caller, get_gate, get_ledger
from ridesync.api.middleware import limiter
from ridesync.api.schemas import (
    ErrorResponse,
    RateRequest,
    RideCreateRequest,
    RideResponse,
)
from ridesync.config import settings
from ridesync.domain.entities import MutationIntent, RideRecord
from ridesync.domain.ledger import LedgerAdapter, TransitionGate, submit_with_timeout

router = APIRouter(prefix="/rides", tags=["rides"])

_CONFLICT = {409: {"model": ErrorResponse, "description": "Illegal transition"}}


async def _submit(gate: TransitionGate, intent: MutationIntent) -> RideRecord:
    return await submit_with_timeout(gate, intent, settings.submit_timeout_seconds)


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="Request a ride",
    responses={201: {"description": "Ride recorded on the ledger."}},
)
@limiter.limit("100/minute")
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    caller: str = Depends(get_caller),
    gate: TransitionGate = Depends(get_gate),
):
    intent = MutationIntent.create(
        caller, body.pickup.to_domain(), body.dropoff.to_domain(), body.amount
    )
    return await _submit(gate, intent)


@router.get("", response_model=list[RideResponse], summary="List recent rides")
@limiter.limit("100/minute")
async def list_rides(
    request: Request,
    limit: int = Query(settings.ledger_window, ge=1, le=500),
    ledger: LedgerAdapter = Depends(get_ledger),
):
    return list(await ledger.list_records(limit))


@router.get(
    "/{ride_id}",
    response_model=RideResponse,
    summary="Get one ride",
    responses={404: {"model": ErrorResponse}},
)
@limiter.limit("100/minute")
async def get_ride(
    request: Request,
    ride_id: int,
    ledger: LedgerAdapter = Depends(get_ledger),
):
    return await ledger.get_record(ride_id)


@router.post(
    "/{ride_id}/accept",
    response_model=RideResponse,
    summary="Accept an open ride",
    description="Fails with 409 ``AlreadyTaken`` when another provider won the race.",
    responses=_CONFLICT,
)
@limiter.limit("100/minute")
async def accept_ride(
    request: Request,
    ride_id: int,
    caller: str = Depends(get_caller),
    gate: TransitionGate = Depends(get_gate),
):
    return await _submit(gate, MutationIntent.accept(caller, ride_id))


@router.post(
    "/{ride_id}/start",
    response_model=RideResponse,
    summary="Start the trip",
    responses=_CONFLICT,
)
@limiter.limit("100/minute")
async def start_ride(
    request: Request,
    ride_id: int,
    caller: str = Depends(get_caller),
    gate: TransitionGate = Depends(get_gate),
):
    return await _submit(gate, MutationIntent.start(caller, ride_id))


@router.post(
    "/{ride_id}/complete",
    response_model=RideResponse,
    summary="Confirm arrival and release the escrow",
    responses=_CONFLICT,
)
@limiter.limit("100/minute")
async def complete_ride(
    request: Request,
    ride_id: int,
    caller: str = Depends(get_caller),
    gate: TransitionGate = Depends(get_gate),
):
    return await _submit(gate, MutationIntent.complete(caller, ride_id))


@router.post(
    "/{ride_id}/cancel",
    response_model=RideResponse,
    summary="Cancel a ride",
    description=(
        "Transitions a CREATED (requester only) or ACCEPTED (either party) "
        "ride to CANCELLED and refunds the escrow to the requester."
    ),
    responses=_CONFLICT,
)
@limiter.limit("100/minute")
async def cancel_ride(
    request: Request,
    ride_id: int,
    caller: str = Depends(get_caller),
    gate: TransitionGate = Depends(get_gate),
):
    return await _submit(gate, MutationIntent.cancel(caller, ride_id))


@router.post(
    "/{ride_id}/rate",
    response_model=RideResponse,
    summary="Rate the provider of a completed ride",
    responses=_CONFLICT,
)
@limiter.limit("100/minute")
async def rate_ride(
    request: Request,
    ride_id: int,
    body: RateRequest,
    caller: str = Depends(get_caller),
    gate: TransitionGate = Depends(get_gate),
):
    return await _submit(gate, MutationIntent.rate(caller, ride_id, body.rating))
