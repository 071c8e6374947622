from __future__ import annotations

import contextlib
import logging
import threading
import typing as _t
import weakref

import httpx

from ..config import DebugConfig, get_config
from ..errors import AlreadyInstrumented
from ..events import EventKind
from ..normalizer import normalize_response, request_event
from ..sink import DebugLog, LoggingListener
from ..tracker import Exchange, ExchangeTracker
from .hooks import CallContext, create_async_event_hooks, create_event_hooks, current_call

__all__ = [
    "AsyncInstrumentedClient",
    "Instrumentation",
    "InstrumentedClient",
    "instrument",
]

logger = logging.getLogger("reqdebug.client")

# Client instances that currently carry our hooks.
_instrumented: weakref.WeakSet = weakref.WeakSet()
_instrumented_lock = threading.Lock()

_HOOK_NAMES = ("request", "response")


class Instrumentation:
    """Hooks installed on one httpx client, and the tracker they feed.

    Each client instance can be instrumented once; a second attempt raises
    ``AlreadyInstrumented`` until ``detach()`` is called. Clients created
    later from the same settings are separate instances and are not
    instrumented.
    """

    def __init__(
        self,
        client: httpx.Client | httpx.AsyncClient,
        log: DebugLog,
        config: DebugConfig,
    ):
        self.client = client
        self.log = log
        self.config = config
        self.tracker = ExchangeTracker(log)
        self._hooks: dict[str, list[_t.Callable]] | None = None
        self._listener: LoggingListener | None = None

    @property
    def attached(self) -> bool:
        return self._hooks is not None

    def attach(self) -> None:
        """Append our hooks after any hooks the client already has."""
        with _instrumented_lock:
            if self.client in _instrumented:
                raise AlreadyInstrumented(self.client)

            if isinstance(self.client, httpx.AsyncClient):
                hooks = create_async_event_hooks(self)
            else:
                hooks = create_event_hooks(self)

            existing = self.client.event_hooks
            self.client.event_hooks = {
                name: [*existing.get(name, []), *hooks[name]] for name in _HOOK_NAMES
            }
            self._hooks = hooks
            _instrumented.add(self.client)

        if self.config.log_events:
            self._listener = LoggingListener(self.config.log_level)
            self.log.subscribe(self._listener)

        logger.debug(f"Instrumented {type(self.client).__name__} at {id(self.client):#x}")

    def detach(self) -> None:
        """Remove our hooks. Safe to call more than once."""
        with _instrumented_lock:
            if self._hooks is None:
                return
            existing = self.client.event_hooks
            self.client.event_hooks = {
                name: [hook for hook in existing.get(name, []) if hook not in self._hooks[name]]
                for name in _HOOK_NAMES
            }
            self._hooks = None
            _instrumented.discard(self.client)

        if self._listener is not None:
            self.log.unsubscribe(self._listener)
            self._listener = None

        logger.debug(f"Detached from {type(self.client).__name__} at {id(self.client):#x}")

    # Call lifecycle, driven by the wrappers

    def begin_call(
        self,
        request: httpx.Request,
        *,
        stream: bool,
        auth: _t.Any,
        follow_redirects: _t.Any,
    ) -> CallContext:
        if follow_redirects is httpx.USE_CLIENT_DEFAULT:
            follow_redirects = self.client.follow_redirects
        return CallContext(
            self,
            self.tracker.begin(request),
            follow_redirects=bool(follow_redirects),
            auth_active=self._auth_active(request, auth),
            stream=stream,
        )

    def end_call(self, call: CallContext, error: BaseException | None = None) -> Exchange | None:
        if error is not None:
            return self.tracker.fail(call.exchange_id, error)
        return self.tracker.finish(call.exchange_id)

    def _auth_active(self, request: httpx.Request, auth: _t.Any) -> bool:
        # Same precedence httpx applies: explicit auth, client auth, URL credentials.
        if auth is httpx.USE_CLIENT_DEFAULT:
            auth = self.client.auth
        if auth is not None:
            return True
        return bool(request.url.username or request.url.password)

    # Hook callbacks

    def active_call(self, request: httpx.Request) -> CallContext | None:
        call = current_call.get()
        if call is None or call.owner is not self:
            logger.debug(
                f"Ignoring {request.method} {request.url}: not sent through the instrumented wrapper"
            )
            return None
        return call

    def observe_request(self, call: CallContext, request: httpx.Request) -> None:
        self.tracker.dispatch(call.exchange_id, request_event(request))

    def observe_response(
        self,
        call: CallContext,
        response: httpx.Response,
        kind: EventKind,
        body: str | None = None,
    ) -> None:
        self.tracker.dispatch(call.exchange_id, normalize_response(response, kind, body))

    def body_text(self, response: httpx.Response) -> str:
        text = response.text
        limit = self.config.max_body_chars
        if limit >= 0 and len(text) > limit:
            text = text[:limit]
        return text


class _InstrumentedBase:
    """State and forwarding shared by the sync and async wrappers."""

    def __init__(
        self,
        client: httpx.Client | httpx.AsyncClient,
        log: DebugLog | None = None,
        *,
        config: DebugConfig | None = None,
    ):
        self._client = client
        self._instrumentation = Instrumentation(
            client,
            log if log is not None else DebugLog(),
            config or get_config(),
        )
        self._instrumentation.attach()

    @property
    def client(self) -> httpx.Client | httpx.AsyncClient:
        """The wrapped httpx client."""
        return self._client

    @property
    def log(self) -> DebugLog:
        return self._instrumentation.log

    @property
    def tracker(self) -> ExchangeTracker:
        return self._instrumentation.tracker

    @property
    def instrumentation(self) -> Instrumentation:
        return self._instrumentation

    def detach(self) -> None:
        """Stop observing the wrapped client."""
        self._instrumentation.detach()

    def _begin(self, request: httpx.Request, stream: bool, auth: _t.Any, follow_redirects: _t.Any):
        call = self._instrumentation.begin_call(
            request, stream=stream, auth=auth, follow_redirects=follow_redirects
        )
        return call, current_call.set(call)

    def __getattr__(self, name: str) -> _t.Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self._client, name)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._client!r})"


class InstrumentedClient(_InstrumentedBase):
    """An ``httpx.Client`` wrapper that records every call in a ``DebugLog``.

    Requests, responses and exceptions are those of the wrapped client.
    Only calls made through this wrapper are recorded.
    """

    _client: httpx.Client

    def send(
        self,
        request: httpx.Request,
        *,
        stream: bool = False,
        auth: _t.Any = httpx.USE_CLIENT_DEFAULT,
        follow_redirects: _t.Any = httpx.USE_CLIENT_DEFAULT,
    ) -> httpx.Response:
        call, token = self._begin(request, stream, auth, follow_redirects)
        try:
            response = self._client.send(
                request, stream=stream, auth=auth, follow_redirects=follow_redirects
            )
        except BaseException as exc:
            self._instrumentation.end_call(call, exc)
            raise
        finally:
            current_call.reset(token)
        self._instrumentation.end_call(call)
        return response

    def request(
        self,
        method: str,
        url: httpx.URL | str,
        *,
        auth: _t.Any = httpx.USE_CLIENT_DEFAULT,
        follow_redirects: _t.Any = httpx.USE_CLIENT_DEFAULT,
        **kwargs: _t.Any,
    ) -> httpx.Response:
        request = self._client.build_request(method, url, **kwargs)
        return self.send(request, auth=auth, follow_redirects=follow_redirects)

    @contextlib.contextmanager
    def stream(
        self,
        method: str,
        url: httpx.URL | str,
        *,
        auth: _t.Any = httpx.USE_CLIENT_DEFAULT,
        follow_redirects: _t.Any = httpx.USE_CLIENT_DEFAULT,
        **kwargs: _t.Any,
    ) -> _t.Iterator[httpx.Response]:
        """Stream a response. The recorded ``response`` event has no body."""
        request = self._client.build_request(method, url, **kwargs)
        response = self.send(request, auth=auth, follow_redirects=follow_redirects, stream=True)
        try:
            yield response
        finally:
            response.close()

    def get(self, url: httpx.URL | str, **kwargs: _t.Any) -> httpx.Response:
        return self.request("GET", url, **kwargs)

    def options(self, url: httpx.URL | str, **kwargs: _t.Any) -> httpx.Response:
        return self.request("OPTIONS", url, **kwargs)

    def head(self, url: httpx.URL | str, **kwargs: _t.Any) -> httpx.Response:
        return self.request("HEAD", url, **kwargs)

    def post(self, url: httpx.URL | str, **kwargs: _t.Any) -> httpx.Response:
        return self.request("POST", url, **kwargs)

    def put(self, url: httpx.URL | str, **kwargs: _t.Any) -> httpx.Response:
        return self.request("PUT", url, **kwargs)

    def patch(self, url: httpx.URL | str, **kwargs: _t.Any) -> httpx.Response:
        return self.request("PATCH", url, **kwargs)

    def delete(self, url: httpx.URL | str, **kwargs: _t.Any) -> httpx.Response:
        return self.request("DELETE", url, **kwargs)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> InstrumentedClient:
        self._client.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self._client.__exit__(exc_type, exc_val, exc_tb)


class AsyncInstrumentedClient(_InstrumentedBase):
    """The ``httpx.AsyncClient`` counterpart of ``InstrumentedClient``."""

    _client: httpx.AsyncClient

    async def send(
        self,
        request: httpx.Request,
        *,
        stream: bool = False,
        auth: _t.Any = httpx.USE_CLIENT_DEFAULT,
        follow_redirects: _t.Any = httpx.USE_CLIENT_DEFAULT,
    ) -> httpx.Response:
        call, token = self._begin(request, stream, auth, follow_redirects)
        try:
            response = await self._client.send(
                request, stream=stream, auth=auth, follow_redirects=follow_redirects
            )
        except BaseException as exc:
            self._instrumentation.end_call(call, exc)
            raise
        finally:
            current_call.reset(token)
        self._instrumentation.end_call(call)
        return response

    async def request(
        self,
        method: str,
        url: httpx.URL | str,
        *,
        auth: _t.Any = httpx.USE_CLIENT_DEFAULT,
        follow_redirects: _t.Any = httpx.USE_CLIENT_DEFAULT,
        **kwargs: _t.Any,
    ) -> httpx.Response:
        request = self._client.build_request(method, url, **kwargs)
        return await self.send(request, auth=auth, follow_redirects=follow_redirects)

    @contextlib.asynccontextmanager
    async def stream(
        self,
        method: str,
        url: httpx.URL | str,
        *,
        auth: _t.Any = httpx.USE_CLIENT_DEFAULT,
        follow_redirects: _t.Any = httpx.USE_CLIENT_DEFAULT,
        **kwargs: _t.Any,
    ) -> _t.AsyncIterator[httpx.Response]:
        """Stream a response. The recorded ``response`` event has no body."""
        request = self._client.build_request(method, url, **kwargs)
        response = await self.send(
            request, auth=auth, follow_redirects=follow_redirects, stream=True
        )
        try:
            yield response
        finally:
            await response.aclose()

    async def get(self, url: httpx.URL | str, **kwargs: _t.Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def options(self, url: httpx.URL | str, **kwargs: _t.Any) -> httpx.Response:
        return await self.request("OPTIONS", url, **kwargs)

    async def head(self, url: httpx.URL | str, **kwargs: _t.Any) -> httpx.Response:
        return await self.request("HEAD", url, **kwargs)

    async def post(self, url: httpx.URL | str, **kwargs: _t.Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: httpx.URL | str, **kwargs: _t.Any) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: httpx.URL | str, **kwargs: _t.Any) -> httpx.Response:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: httpx.URL | str, **kwargs: _t.Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> AsyncInstrumentedClient:
        await self._client.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self._client.__aexit__(exc_type, exc_val, exc_tb)


def instrument(
    client: httpx.Client | httpx.AsyncClient,
    log: DebugLog | None = None,
    *,
    config: DebugConfig | None = None,
) -> InstrumentedClient | AsyncInstrumentedClient:
    """Attach debug instrumentation to an httpx client.

    Args:
        client: The client to observe. It keeps working unchanged.
        log: Log to record into; a new one is created when omitted.
        config: Behaviour settings; the global config when omitted.

    Returns:
        A wrapper to make calls through. Its ``log`` holds the events.

    Raises:
        AlreadyInstrumented: If the client instance is already instrumented.
    """
    if isinstance(client, _InstrumentedBase):
        raise AlreadyInstrumented(client)
    if isinstance(client, httpx.AsyncClient):
        return AsyncInstrumentedClient(client, log, config=config)
    if isinstance(client, httpx.Client):
        return InstrumentedClient(client, log, config=config)
    raise TypeError(f"Cannot instrument {type(client).__name__}; expected httpx.Client or httpx.AsyncClient")
