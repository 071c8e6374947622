"""reqdebug: ordered debug logs of httpx request lifecycles.

Wrap an httpx client with ``instrument()`` and every call made through the
wrapper is recorded as a sequence of ``request``, ``redirect``, ``auth`` and
``response`` events, grouped by the logical exchange they belong to.

    >>> import httpx, reqdebug
    >>> client = reqdebug.instrument(httpx.Client(follow_redirects=True))
    >>> client.get("https://example.org/")
    >>> client.log.records()
"""

from . import config
from .client import AsyncInstrumentedClient, InstrumentedClient, instrument
from .config import DebugConfig, get_config, load_config
from .errors import AlreadyInstrumented, ReqDebugError, UnexpectedEventOrder
from .events import (
    AuthEvent,
    EventKind,
    LifecycleEvent,
    RedirectEvent,
    RequestEvent,
    ResponseEvent,
)
from .redact import mask_events, mask_records, mask_variable_headers
from .sink import DebugLog, LogEntry, LoggingListener
from .tracker import Exchange, ExchangeState, ExchangeTracker

# Version of the reqdebug package
version: str = '0.1.0'

__all__: list[str] = [
    # Instrumentation
    'instrument',
    'InstrumentedClient',
    'AsyncInstrumentedClient',
    # Events
    'EventKind',
    'LifecycleEvent',
    'RequestEvent',
    'ResponseEvent',
    'RedirectEvent',
    'AuthEvent',
    # Correlation and log
    'Exchange',
    'ExchangeState',
    'ExchangeTracker',
    'DebugLog',
    'LogEntry',
    'LoggingListener',
    # Redaction helpers
    'mask_events',
    'mask_records',
    'mask_variable_headers',
    # Errors
    'ReqDebugError',
    'AlreadyInstrumented',
    'UnexpectedEventOrder',
    # Config
    'config',
    'DebugConfig',
    'get_config',
    'load_config',
    # Package version
    'version',
]
