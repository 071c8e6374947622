"""Instrumentation of httpx clients.

``instrument()`` attaches request and response hooks to an httpx client and
returns a wrapper; every call made through the wrapper is recorded as an
ordered sequence of lifecycle events in a ``DebugLog``.
"""

from .base import AsyncInstrumentedClient, Instrumentation, InstrumentedClient, instrument
from .hooks import CallContext, create_async_event_hooks, create_event_hooks


__all__ = [
    'AsyncInstrumentedClient',
    'CallContext',
    'Instrumentation',
    'InstrumentedClient',
    'create_async_event_hooks',
    'create_event_hooks',
    'instrument',
]
