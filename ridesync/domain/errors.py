"""
Error taxonomy for ride mutations.

``InvalidTransition``, ``AlreadyTaken`` and ``AlreadyRated`` are contract
violations: report them verbatim, never retry.  ``RejectedByLedger`` and
``Unknown`` leave no partial state behind; the next snapshot is the truth.
"""

from __future__ import annotations

from typing import Optional


class RideError(Exception):
    """Base class for every ride-ledger failure."""

    retryable = False


class NotFound(RideError):
    def __init__(self, ride_id: int):
        super().__init__(f"Ride {ride_id} not found")
        self.ride_id = ride_id


class InvalidTransition(RideError):
    """The requested edge is not in the graph, or the caller has the wrong role."""

    def __init__(self, action, status, reason: Optional[str] = None):
        action_name = getattr(action, "value", action)
        status_name = getattr(status, "value", status)
        message = f"Cannot {action_name} a ride in status {status_name}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.action = action
        self.status = status
        self.reason = reason


class InvalidRating(InvalidTransition):
    pass


class AlreadyTaken(RideError):
    """Lost an accept race: another provider was confirmed first."""

    def __init__(self, ride_id: int, provider_id: Optional[str]):
        super().__init__(f"Ride {ride_id} was already accepted by {provider_id}")
        self.ride_id = ride_id
        self.provider_id = provider_id


class AlreadyRated(RideError):
    def __init__(self, ride_id: int):
        super().__init__(f"Ride {ride_id} has already been rated")
        self.ride_id = ride_id


class RejectedByLedger(RideError):
    """The ledger refused the mutation (declined, insufficient funds, network)."""

    retryable = True


class Unknown(RideError):
    """The outcome could not be confirmed; the next snapshot will tell."""

    retryable = True
