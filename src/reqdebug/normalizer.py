"""Conversion of httpx requests and responses into lifecycle events.

The normalizer never alters what it observes: header values (including
digest challenge parameters) are copied verbatim, only header names are
folded to lower case.
"""

from __future__ import annotations

import logging
import typing as _t

import httpx

from .events import (
    AuthEvent,
    EventKind,
    RedirectEvent,
    RequestEvent,
    ResponseEvent,
)

__all__ = [
    "CHALLENGE_HEADERS",
    "auth_event",
    "classify_response",
    "is_challenge",
    "normalize_response",
    "redirect_event",
    "redirect_target",
    "request_event",
    "response_event",
]

logger = logging.getLogger(__name__)

# Status codes that carry a negotiated-authentication challenge, with the
# header the challenge lives in.
CHALLENGE_HEADERS: dict[int, str] = {
    401: "www-authenticate",
    407: "proxy-authenticate",
}


def request_event(request: httpx.Request) -> RequestEvent:
    """Snapshot a request as it is about to be sent.

    The header set is copied at call time; auth flows mutate the same request
    object before re-sending it.
    """
    return RequestEvent(
        uri=str(request.url),
        method=request.method,
        headers=request.headers,
    )


def redirect_target(response: httpx.Response) -> str:
    """Resolve the absolute URL a redirect response points to.

    Mirrors the way httpx builds the follow-up request: relative locations are
    joined with the request URL, scheme-only locations inherit the host and a
    request fragment is carried over when the location has none.
    """
    request = response.request
    location = response.headers["location"]
    try:
        url = httpx.URL(location)
    except httpx.InvalidURL:
        logger.debug(f"Malformed Location header {location!r} on {request.url}")
        return location

    if url.scheme and not url.host:
        url = url.copy_with(host=request.url.host)
    if url.is_relative_url:
        url = request.url.join(url)
    if request.url.fragment and not url.fragment:
        url = url.copy_with(fragment=request.url.fragment)
    return str(url)


def is_challenge(response: httpx.Response) -> bool:
    """Return True when the response asks the client to authenticate."""
    header = CHALLENGE_HEADERS.get(response.status_code)
    return header is not None and header in response.headers


def classify_response(
    response: httpx.Response,
    *,
    follow_redirects: bool,
    auth_active: bool,
) -> EventKind:
    """Decide which kind of event a response represents for the current call.

    Args:
        response: The response delivered by the client's response hook.
        follow_redirects: Whether the call lets httpx follow redirects.
        auth_active: Whether an auth flow is in effect for the call.
    """
    if follow_redirects and response.has_redirect_location:
        return EventKind.REDIRECT
    if auth_active and is_challenge(response):
        return EventKind.AUTH
    return EventKind.RESPONSE


def response_event(response: httpx.Response, body: str | None = None) -> ResponseEvent:
    return ResponseEvent(
        status_code=response.status_code,
        headers=response.headers,
        body=body,
    )


def redirect_event(response: httpx.Response) -> RedirectEvent:
    return RedirectEvent(
        status_code=response.status_code,
        headers=response.headers,
        uri=redirect_target(response),
    )


def auth_event(response: httpx.Response) -> AuthEvent:
    return AuthEvent(
        status_code=response.status_code,
        headers=response.headers,
        uri=str(response.request.url),
    )


def normalize_response(
    response: httpx.Response,
    kind: EventKind,
    body: str | None = None,
) -> _t.Union[ResponseEvent, RedirectEvent, AuthEvent]:
    """Build the event of the given kind. ``body`` is ignored for non-final kinds."""
    if kind is EventKind.REDIRECT:
        return redirect_event(response)
    if kind is EventKind.AUTH:
        return auth_event(response)
    return response_event(response, body)
