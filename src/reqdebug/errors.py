"""Error taxonomy for reqdebug.

None of these errors are fatal to the host process: ``AlreadyInstrumented``
is raised back to the caller, ``UnexpectedEventOrder`` is logged by the
tracker and transport failures from httpx are never wrapped.
"""

from __future__ import annotations

import typing as _t

__all__ = [
    "ReqDebugError",
    "AlreadyInstrumented",
    "UnexpectedEventOrder",
]


class ReqDebugError(Exception):
    """Base class for errors raised by reqdebug."""


class AlreadyInstrumented(ReqDebugError):
    """Raised when instrumentation is attached twice to the same client instance."""

    def __init__(self, client: _t.Any):
        self.client = client
        super().__init__(
            f"{type(client).__name__} at {id(client):#x} is already instrumented; "
            "detach() the existing instrumentation first"
        )


class UnexpectedEventOrder(ReqDebugError):
    """A lifecycle event arrived that the exchange state machine does not allow."""

    def __init__(self, exchange_id: str, state: str, kind: str, detail: str = ""):
        self.exchange_id = exchange_id
        self.state = state
        self.kind = kind
        message = f"Exchange {exchange_id}: unexpected '{kind}' event in state {state}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
