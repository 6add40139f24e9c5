import asyncio

import httpx
import pytest

from sms_notifier.errors import ConfigurationError, ConnectivityError
from sms_notifier.relay import PushbulletRelay


def _relay(handler):
    return PushbulletRelay(
        " o.token ",
        api_url="https://relay.test/v2/",
        transport=httpx.MockTransport(handler),
    )


def test_blank_key_is_rejected():
    with pytest.raises(ConfigurationError):
        PushbulletRelay("  ")


def test_identify_sends_access_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["token"] = request.headers["Access-Token"]
        return httpx.Response(200, json={"name": "Ann", "email": "ann@example.com"})

    profile = asyncio.run(_relay(handler).identify())
    assert profile["name"] == "Ann"
    assert seen == {"url": "https://relay.test/v2/users/me", "token": "o.token"}


def test_fetch_recent_passes_bounds_and_filters_entries():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.url.params)
        return httpx.Response(200, json={"pushes": [{"type": "mirror"}, "junk", None]})

    pushes = asyncio.run(_relay(handler).fetch_recent(limit=5, modified_after=100.5))
    assert pushes == [{"type": "mirror"}]
    assert seen == {"limit": "5", "modified_after": "100.5"}


@pytest.mark.parametrize("status", [401, 403])
def test_rejected_key(status):
    relay = _relay(lambda request: httpx.Response(status))
    with pytest.raises(ConnectivityError) as exc:
        asyncio.run(relay.identify())
    assert exc.value.status_code == status
    assert "API key" in str(exc.value)


def test_server_error_and_bad_payloads():
    with pytest.raises(ConnectivityError) as exc:
        asyncio.run(_relay(lambda request: httpx.Response(502)).identify())
    assert exc.value.status_code == 502

    with pytest.raises(ConnectivityError, match="invalid JSON"):
        asyncio.run(_relay(lambda request: httpx.Response(200, text="<html>")).identify())

    with pytest.raises(ConnectivityError, match="unexpected payload"):
        asyncio.run(_relay(lambda request: httpx.Response(200, json=[1, 2])).identify())


def test_transport_failure_is_connectivity_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ConnectivityError, match="request failed"):
        asyncio.run(_relay(handler).identify())
