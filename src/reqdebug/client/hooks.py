"""httpx event hooks feeding an instrumentation.

httpx calls request hooks before every physical request (initial request,
redirect hops, auth retries) and response hooks on every response, before
redirects are followed or challenges answered. The hooks here resolve the
call currently running in the caller's context and hand the raw objects to
the owning ``Instrumentation``.
"""

from __future__ import annotations

import contextvars
import typing as _t

import httpx

from ..events import EventKind
from ..normalizer import classify_response

if _t.TYPE_CHECKING:
    from .base import Instrumentation

__all__ = [
    "CallContext",
    "create_async_event_hooks",
    "create_event_hooks",
    "current_call",
]


class CallContext:
    """Facts about one user-initiated call that the hooks need."""

    __slots__ = ("owner", "exchange_id", "follow_redirects", "auth_active", "stream")

    def __init__(
        self,
        owner: Instrumentation,
        exchange_id: str,
        *,
        follow_redirects: bool,
        auth_active: bool,
        stream: bool,
    ):
        self.owner = owner
        self.exchange_id = exchange_id
        self.follow_redirects = follow_redirects
        self.auth_active = auth_active
        self.stream = stream

    @property
    def capture_body(self) -> bool:
        return self.owner.config.capture_body and not self.stream

    def classify(self, response: httpx.Response) -> EventKind:
        return classify_response(
            response,
            follow_redirects=self.follow_redirects,
            auth_active=self.auth_active,
        )


# Set by the instrumented wrappers for the duration of each call. Threads
# and asyncio tasks each see their own value.
current_call: contextvars.ContextVar[CallContext | None] = contextvars.ContextVar(
    "reqdebug_current_call", default=None
)


def create_event_hooks(owner: Instrumentation) -> dict[str, list[_t.Callable]]:
    """Create hooks for a synchronous ``httpx.Client``.

    Usage:
        >>> hooks = create_event_hooks(instrumentation)
        >>> client = httpx.Client(event_hooks=hooks)
    """

    def on_request(request: httpx.Request) -> None:
        call = owner.active_call(request)
        if call is not None:
            owner.observe_request(call, request)

    def on_response(response: httpx.Response) -> None:
        call = owner.active_call(response.request)
        if call is None:
            return
        kind = call.classify(response)
        body = None
        if kind is EventKind.RESPONSE and call.capture_body:
            response.read()
            body = owner.body_text(response)
        owner.observe_response(call, response, kind, body)

    return {
        "request": [on_request],
        "response": [on_response],
    }


def create_async_event_hooks(owner: Instrumentation) -> dict[str, list[_t.Callable]]:
    """Create hooks for an ``httpx.AsyncClient``, which awaits its hooks."""

    async def on_request(request: httpx.Request) -> None:
        call = owner.active_call(request)
        if call is not None:
            owner.observe_request(call, request)

    async def on_response(response: httpx.Response) -> None:
        call = owner.active_call(response.request)
        if call is None:
            return
        kind = call.classify(response)
        body = None
        if kind is EventKind.RESPONSE and call.capture_body:
            await response.aread()
            body = owner.body_text(response)
        owner.observe_response(call, response, kind, body)

    return {
        "request": [on_request],
        "response": [on_response],
    }
