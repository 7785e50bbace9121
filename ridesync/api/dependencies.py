"""FastAPI dependency injection helpers."""

from fastapi import Depends, Header, Request

from ridesync.domain.ledger import LedgerAdapter, TransitionGate
from ridesync.domain.queries import QueryService


def get_ledger(request: Request) -> LedgerAdapter:
    """The ledger adapter built by ``create_app``."""
    return request.app.state.ledger


def get_queries(request: Request) -> QueryService:
    return request.app.state.queries


def get_gate(ledger: LedgerAdapter = Depends(get_ledger)) -> TransitionGate:
    return TransitionGate(ledger)


def get_caller(x_identity: str = Header(..., min_length=1, max_length=64)) -> str:
    """Caller identity, supplied by the wallet / session layer in front of us."""
    return x_identity
