"""Masking of time-varying header values in captured logs.

The normalizer records headers verbatim. Dates, entity tags and digest
parameters (nonce, cnonce, response, ...) change from run to run, so
consumers that compare logs replace them with stable placeholders first:

    >>> mask_auth_header('Digest realm="Users", nonce="abc", qop="auth"')
    'Digest realm="Users" <+nonce,qop>'
"""

from __future__ import annotations

import re
import typing as _t

from urllib.request import parse_http_list, parse_keqv_list

from .events import LifecycleEvent

__all__ = [
    "AUTH_HEADERS",
    "mask_auth_header",
    "mask_events",
    "mask_records",
    "mask_variable_headers",
]

AUTH_HEADERS = frozenset({
    "authorization",
    "proxy-authorization",
    "www-authenticate",
    "proxy-authenticate",
})

# RFC 7235 token68, e.g. Basic or Bearer credentials with optional "=" padding
_TOKEN68 = re.compile(r"[A-Za-z0-9\-._~+/]+=*")


def mask_auth_header(value: str) -> str:
    """Keep the scheme and first parameter, list the names of the others."""
    scheme, _, params = value.strip().partition(" ")
    if not params:
        return value
    if _TOKEN68.fullmatch(params.strip()):
        return f"{scheme} <credentials>"
    try:
        fields = parse_keqv_list(parse_http_list(params))
    except ValueError:
        # not a parameter list
        return f"{scheme} <credentials>"
    if not fields:
        return f"{scheme} <credentials>"

    names = list(fields)
    masked = f'{scheme} {names[0]}="{fields[names[0]]}"'
    if len(names) > 1:
        masked += f" <+{','.join(names[1:])}>"
    return masked


def mask_variable_headers(headers: _t.Mapping[str, str]) -> dict[str, str]:
    """Return a copy of ``headers`` with time-varying values replaced."""
    masked = dict(headers)
    if "date" in masked:
        masked["date"] = "<date>"
    if "etag" in masked:
        masked["etag"] = 'W/"<etag>"' if masked["etag"].startswith("W/") else '"<etag>"'
    for name in AUTH_HEADERS & masked.keys():
        masked[name] = mask_auth_header(masked[name])
    return masked


def mask_events(events: _t.Iterable[LifecycleEvent]) -> list[LifecycleEvent]:
    return [
        event.model_copy(update={"headers": mask_variable_headers(event.headers)})
        for event in events
    ]


def mask_records(records: _t.Iterable[dict[str, dict[str, _t.Any]]]) -> list[dict[str, dict[str, _t.Any]]]:
    """Mask the headers of records produced by ``DebugLog.records()``."""
    masked = []
    for record in records:
        (kind, fields), = record.items()
        fields = dict(fields)
        if "headers" in fields:
            fields["headers"] = mask_variable_headers(fields["headers"])
        masked.append({kind: fields})
    return masked
