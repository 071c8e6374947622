"""Lifecycle event records.

Every phase of an exchange is reduced to one of four immutable records:
``request``, ``response``, ``redirect`` and ``auth``. Header keys are always
stored lower-cased so that consumers can compare them directly.
"""

from __future__ import annotations

import typing as _t

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "EventKind",
    "RequestEvent",
    "ResponseEvent",
    "RedirectEvent",
    "AuthEvent",
    "LifecycleEvent",
    "canonical_headers",
]


class EventKind(str, Enum):
    """Tag of a lifecycle event."""

    REQUEST = "request"
    RESPONSE = "response"
    REDIRECT = "redirect"
    AUTH = "auth"


def canonical_headers(headers: _t.Any) -> dict[str, str]:
    """Fold header names to lower case.

    Accepts a mapping (including ``httpx.Headers``) or an iterable of
    ``(name, value)`` pairs. Repeated fields are joined with ``", "``.
    """
    if headers is None:
        return {}
    items = headers.items() if hasattr(headers, "items") else headers
    folded: dict[str, str] = {}
    for key, value in items:
        if isinstance(key, bytes):
            key = key.decode("latin-1")
        if isinstance(value, bytes):
            value = value.decode("latin-1")
        key = key.lower()
        if key in folded:
            folded[key] = f"{folded[key]}, {value}"
        else:
            folded[key] = str(value)
    return folded


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("headers", mode="before")
    @classmethod
    def _fold_header_names(cls, value: _t.Any) -> dict[str, str]:
        return canonical_headers(value)

    def to_record(self) -> dict[str, dict[str, _t.Any]]:
        """Return the event as ``{kind: {field: value}}`` with absent fields omitted."""
        return {self.kind: self.model_dump(exclude={"kind"}, exclude_none=True)}


class RequestEvent(_Event):
    """The client is about to put a request on the wire."""

    kind: _t.Literal["request"] = "request"
    uri: str
    method: str


class ResponseEvent(_Event):
    """A final answer. ``body`` is only set when body capture is on."""

    kind: _t.Literal["response"] = "response"
    status_code: int
    body: str | None = None


class RedirectEvent(_Event):
    """A 3xx answer the client is about to follow to ``uri``."""

    kind: _t.Literal["redirect"] = "redirect"
    status_code: int
    uri: str

    @property
    def location(self) -> str | None:
        return self.headers.get("location")


class AuthEvent(_Event):
    """An authentication challenge; ``uri`` is the resource being retried."""

    kind: _t.Literal["auth"] = "auth"
    status_code: int
    uri: str


LifecycleEvent = _t.Annotated[
    _t.Union[RequestEvent, ResponseEvent, RedirectEvent, AuthEvent],
    Field(discriminator="kind"),
]
