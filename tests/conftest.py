"""Global pytest configuration and fixtures.

The fixture server is an ``httpx.MockTransport`` handler that answers for two
origins, a plain one and a TLS one, with the routes below:

- ``/bottom``: 200 ``Request OK``
- ``/middle``: 302 to ``/bottom``
- ``/middle/http``: 302 to the plain origin's ``/bottom``
- ``/auth/...``: digest challenge until an ``Authorization`` header is sent,
  then the route after the ``/auth`` prefix (``/auth/top/http`` redirects to
  the plain origin's ``/middle``)
- ``/deny``: always a digest challenge
- ``/loop``: 302 to itself
- ``/fail``: connection refused
"""

import logging
import secrets

from email.utils import formatdate

import httpx
import pytest
import pytest_asyncio

from reqdebug import DebugConfig, DebugLog, instrument

# Configure logging for tests
logging.basicConfig(level=logging.INFO)

HTTP_URL = "http://localhost:8480"
HTTPS_URL = "https://localhost:8481"

AUTH_USER = "admin"
AUTH_PASS = "mypass"


def _express_headers(**extra: str) -> dict[str, str]:
    headers = {
        "Connection": "keep-alive",
        "Date": formatdate(usegmt=True),
        "X-Powered-By": "Express",
    }
    headers.update(extra)
    return headers


def _ok() -> httpx.Response:
    return httpx.Response(
        200,
        headers=_express_headers(ETag=f'W/"a-{secrets.token_hex(8)}"'),
        html="Request OK",
    )


def _found(location: str) -> httpx.Response:
    return httpx.Response(
        302,
        headers=_express_headers(Location=location, Vary="Accept"),
        text=f"Found. Redirecting to {location}",
    )


def _challenge() -> httpx.Response:
    nonce = secrets.token_hex(16)
    return httpx.Response(
        401,
        headers=_express_headers(**{
            "WWW-Authenticate": f'Digest realm="Users", nonce="{nonce}", qop="auth"',
        }),
    )


def fixture_app(request: httpx.Request) -> httpx.Response:
    """Route a request the way the fixture servers do."""
    path = request.url.path

    if path == "/fail":
        raise httpx.ConnectError("Connection refused", request=request)
    if path == "/deny":
        return _challenge()
    if path.startswith("/auth/"):
        if not request.headers.get("authorization", "").startswith("Digest "):
            return _challenge()
        path = path[len("/auth"):]

    if path == "/bottom":
        return _ok()
    if path == "/middle":
        return _found("/bottom")
    if path == "/middle/http":
        return _found(f"{HTTP_URL}/bottom")
    if path == "/top/http":
        return _found(f"{HTTP_URL}/middle")
    if path == "/loop":
        return _found("/loop")
    return httpx.Response(404, headers=_express_headers(), text="Not Found")


@pytest.fixture
def http_url() -> str:
    return HTTP_URL


@pytest.fixture
def https_url() -> str:
    return HTTPS_URL


@pytest.fixture
def digest_auth() -> httpx.DigestAuth:
    return httpx.DigestAuth(AUTH_USER, AUTH_PASS)


@pytest.fixture
def debug_log() -> DebugLog:
    return DebugLog()


@pytest.fixture
def debug_config() -> DebugConfig:
    return DebugConfig()


@pytest.fixture
def transport() -> httpx.MockTransport:
    return httpx.MockTransport(fixture_app)


@pytest.fixture
def base_client(transport):
    client = httpx.Client(transport=transport, follow_redirects=True)
    yield client
    client.close()


@pytest.fixture
def client(base_client, debug_log, debug_config):
    """An instrumented client recording into ``debug_log``."""
    wrapped = instrument(base_client, debug_log, config=debug_config)
    yield wrapped
    wrapped.detach()


@pytest_asyncio.fixture
async def async_client(transport, debug_log, debug_config):
    base = httpx.AsyncClient(transport=transport, follow_redirects=True)
    wrapped = instrument(base, debug_log, config=debug_config)
    yield wrapped
    wrapped.detach()
    await base.aclose()
