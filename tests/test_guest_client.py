"""
test_guest_client.py — The client-side caller, with a mocked HTTP session.
"""

from unittest.mock import MagicMock

import pytest
import requests

from guest_gateway.client.fingerprint import DeviceSignatureGenerator
from guest_gateway.client.guest_client import GuestClient, GuestModeError
from guest_gateway.client.identity_cache import IdentityCache

GATEWAY_URL = "https://guest.example.workers.dev"


def _response(status_code, data):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.json.return_value = data
    return response


@pytest.fixture()
def cache(tmp_path):
    return IdentityCache(tmp_path / "identity.json")


@pytest.fixture()
def session():
    return MagicMock()


@pytest.fixture()
def guest(cache, session):
    generator = DeviceSignatureGenerator([("cores", lambda: "8")])
    return GuestClient(GATEWAY_URL, cache=cache, generator=generator, session=session)


def test_meta_is_attached(guest, session, cache):
    session.post.return_value = _response(200, {"choices": [], "_demo": {"usage": 1, "limit": 15, "remaining": 14}})
    guest.send({"messages": [{"role": "user", "content": "hi"}]}, parallel_count=2)

    sent = session.post.call_args.kwargs["json"]
    assert sent["messages"][0]["content"] == "hi"
    assert sent["_meta"]["clientUuid"] == cache.get_client_token()
    assert len(sent["_meta"]["deviceFingerprint"]) == 32
    assert sent["_meta"]["parallelCount"] == 2
    assert session.post.call_args.kwargs["timeout"] == 60


def test_success_updates_usage_mirror(guest, session, cache):
    session.post.return_value = _response(200, {"choices": [], "_demo": {"usage": 4, "limit": 15, "remaining": 11}})
    data = guest.send({"messages": []})
    assert data["_demo"]["usage"] == 4
    assert cache.get_cached_usage(15)["count"] == 4


def test_limit_exceeded_raises_and_marks_exhausted(guest, session, cache):
    session.post.return_value = _response(
        429, {"error": "Daily limit reached", "code": "LIMIT_EXCEEDED", "message": "All used up", "usage": 15, "limit": 15}
    )
    with pytest.raises(GuestModeError) as exc:
        guest.send({"messages": []})
    assert exc.value.code == "LIMIT_EXCEEDED"
    assert exc.value.status_code == 429
    assert str(exc.value) == "All used up"
    assert cache.get_cached_usage(15)["remaining"] == 0


def test_banned_uses_default_message(guest, session):
    session.post.return_value = _response(403, {"error": "Access denied", "code": "BANNED"})
    with pytest.raises(GuestModeError) as exc:
        guest.send({"messages": []})
    assert exc.value.code == "BANNED"
    assert "contact support" in str(exc.value)


def test_upstream_error_message_surfaces(guest, session):
    session.post.return_value = _response(503, {"error": {"message": "over capacity"}})
    with pytest.raises(GuestModeError, match="over capacity"):
        guest.send({"messages": []})


def test_network_failure(guest, session):
    session.post.side_effect = requests.exceptions.ConnectionError("refused")
    with pytest.raises(GuestModeError, match="unreachable"):
        guest.send({"messages": []})


def test_unconfigured_gateway(cache, session):
    client = GuestClient("https://guest.YOUR_SUBDOMAIN.workers.dev", cache=cache, session=session)
    assert not client.is_configured()
    with pytest.raises(GuestModeError):
        client.send({"messages": []})
    session.post.assert_not_called()
