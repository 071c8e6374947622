"""Correlation of lifecycle events into exchanges.

An exchange is one user-initiated call. It may span several physical
requests when the client follows redirects or answers an authentication
challenge. The state machine of an exchange is::

    START --request--> PENDING
    PENDING --response--> COMPLETED
    PENDING --redirect--> REDIRECTING --request--> PENDING
    PENDING --auth--> CHALLENGED --request--> PENDING

``COMPLETED`` and ``FAILED`` are terminal. ``advance`` is a pure function
over ``(exchange, event)``; ``ExchangeTracker`` holds the live exchanges and
writes accepted events to a ``DebugLog``.
"""

from __future__ import annotations

import logging
import threading
import typing as _t

from enum import Enum

import httpx
from pydantic import BaseModel, ConfigDict

from .errors import UnexpectedEventOrder
from .events import EventKind, LifecycleEvent
from .id import new_exchange_id
from .sink import DebugLog

__all__ = [
    "Exchange",
    "ExchangeState",
    "ExchangeTracker",
    "Transition",
    "advance",
    "close",
    "fail",
]

logger = logging.getLogger(__name__)


class ExchangeState(str, Enum):
    START = "start"
    PENDING = "pending"
    REDIRECTING = "redirecting"
    CHALLENGED = "challenged"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = frozenset({ExchangeState.COMPLETED, ExchangeState.FAILED})

# States in which a new physical request is expected next.
_AWAITING_REQUEST = frozenset({
    ExchangeState.START,
    ExchangeState.REDIRECTING,
    ExchangeState.CHALLENGED,
})

_ANSWER_STATES: dict[EventKind, ExchangeState] = {
    EventKind.RESPONSE: ExchangeState.COMPLETED,
    EventKind.REDIRECT: ExchangeState.REDIRECTING,
    EventKind.AUTH: ExchangeState.CHALLENGED,
}


class Exchange(BaseModel):
    """Immutable snapshot of one logical exchange."""

    model_config = ConfigDict(frozen=True)

    exchange_id: str
    origin: str
    state: ExchangeState = ExchangeState.START
    events: tuple[LifecycleEvent, ...] = ()
    current_uri: str | None = None
    redirect_target: str | None = None
    credentials_sent: bool = False
    error: str | None = None

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES


class Transition(_t.NamedTuple):
    exchange: Exchange
    append: LifecycleEvent | None


def advance(exchange: Exchange, event: LifecycleEvent) -> Transition:
    """Apply one event to an exchange.

    Returns the new exchange and the event to append to the log.

    Raises:
        UnexpectedEventOrder: If the event is not allowed in the current state.
            The caller keeps the exchange unchanged.
    """
    state = exchange.state
    kind = EventKind(event.kind)

    if state in TERMINAL_STATES:
        raise UnexpectedEventOrder(
            exchange.exchange_id, state.value, kind.value, "exchange already finished"
        )

    if kind is EventKind.REQUEST:
        if state not in _AWAITING_REQUEST:
            raise UnexpectedEventOrder(
                exchange.exchange_id, state.value, kind.value, "previous request is unanswered"
            )
        updated = exchange.model_copy(update={
            "state": ExchangeState.PENDING,
            "events": exchange.events + (event,),
            "current_uri": event.uri,
            "redirect_target": None,
            "credentials_sent": exchange.credentials_sent or "authorization" in event.headers,
        })
        return Transition(updated, event)

    if state is not ExchangeState.PENDING:
        raise UnexpectedEventOrder(
            exchange.exchange_id, state.value, kind.value, "no request is awaiting an answer"
        )

    update: dict[str, _t.Any] = {
        "state": _ANSWER_STATES[kind],
        "events": exchange.events + (event,),
    }
    if kind is EventKind.REDIRECT:
        update["redirect_target"] = event.uri
    return Transition(exchange.model_copy(update=update), event)


def fail(exchange: Exchange, error: BaseException) -> Exchange:
    """Mark an exchange as failed after a transport error. Appends nothing."""
    return exchange.model_copy(update={
        "state": ExchangeState.FAILED,
        "error": f"{type(error).__name__}: {error}",
    })


def close(exchange: Exchange) -> Exchange:
    """Finalize an exchange whose call has returned.

    A challenge that the client chose not to answer is a terminal auth
    failure and closes the exchange as completed.
    """
    if exchange.state is ExchangeState.CHALLENGED:
        return exchange.model_copy(update={"state": ExchangeState.COMPLETED})
    return exchange


class ExchangeTracker:
    """Keeps in-flight exchanges and records their events in a ``DebugLog``.

    Finished exchanges are kept in ``history`` (bounded by ``max_history``)
    for inspection.
    """

    def __init__(self, log: DebugLog, max_history: int = 100):
        self.log = log
        self.max_history = max_history
        self.history: list[Exchange] = []
        self._exchanges: dict[str, Exchange] = {}
        self._lock = threading.Lock()

    def begin(self, request: httpx.Request) -> str:
        """Open an exchange for a user-initiated call and return its id."""
        exchange_id = new_exchange_id()
        exchange = Exchange(exchange_id=exchange_id, origin=f"{request.method} {request.url}")
        with self._lock:
            self._exchanges[exchange_id] = exchange
        logger.debug(f"Exchange {exchange_id} started for {exchange.origin}")
        return exchange_id

    def dispatch(self, exchange_id: str, event: LifecycleEvent) -> Exchange | None:
        """Route an event to its exchange and append it to the log when accepted."""
        with self._lock:
            exchange = self._exchanges.get(exchange_id)
            if exchange is None:
                logger.warning(f"Dropping '{event.kind}' event for unknown exchange {exchange_id}")
                return None

            self._check_hop(exchange, event)
            try:
                transition = advance(exchange, event)
            except UnexpectedEventOrder as e:
                logger.warning(str(e))
                return exchange

            self._exchanges[exchange_id] = transition.exchange
            if transition.append is not None:
                self.log.append(exchange_id, transition.append)
            return transition.exchange

    def fail(self, exchange_id: str, error: BaseException) -> Exchange | None:
        """Record a transport failure. The error itself is left to the caller."""
        with self._lock:
            exchange = self._exchanges.pop(exchange_id, None)
            if exchange is None:
                return None
            if exchange.terminal:
                # The answer already arrived; the failure happened afterwards.
                logger.debug(f"Exchange {exchange_id} errored after completion: {error!r}")
                finished = exchange
            else:
                finished = fail(exchange, error)
                logger.debug(f"Exchange {exchange_id} failed: {finished.error}")
            self._remember(finished)
            return finished

    def finish(self, exchange_id: str) -> Exchange | None:
        """Close an exchange after its call returned and drop it from memory."""
        with self._lock:
            exchange = self._exchanges.pop(exchange_id, None)
            if exchange is None:
                return None
            finished = close(exchange)
            if finished.state is not ExchangeState.COMPLETED:
                logger.warning(
                    f"Exchange {exchange_id} returned in state {finished.state.value} "
                    "without a final answer"
                )
            self._remember(finished)
            return finished

    def snapshot(self, exchange_id: str) -> Exchange | None:
        with self._lock:
            return self._exchanges.get(exchange_id)

    def in_flight(self) -> list[str]:
        with self._lock:
            return list(self._exchanges)

    def _remember(self, exchange: Exchange) -> None:
        self.history.append(exchange)
        if len(self.history) > self.max_history:
            self.history = self.history[-self.max_history:]

    @staticmethod
    def _check_hop(exchange: Exchange, event: LifecycleEvent) -> None:
        if event.kind != EventKind.REQUEST:
            return
        if exchange.state is ExchangeState.REDIRECTING and event.uri != exchange.redirect_target:
            logger.warning(
                f"Exchange {exchange.exchange_id}: redirect announced {exchange.redirect_target} "
                f"but the client requested {event.uri}"
            )
        elif exchange.state is ExchangeState.CHALLENGED and "authorization" not in event.headers:
            logger.debug(
                f"Exchange {exchange.exchange_id}: retry after challenge carries no authorization header"
            )
