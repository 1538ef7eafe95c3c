"""
test_upstream_client.py — Upstream pass-through with requests.post patched out.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from guest_gateway.core.errors import UpstreamError
from guest_gateway.services.upstream_client import forward_completion

URL = "https://upstream.test/v1/chat/completions"


def _response(status_code, data=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    if data is None:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = data
    response.text = text
    return response


def test_success_forwards_payload_with_server_key():
    with patch("guest_gateway.services.upstream_client.requests.post", return_value=_response(200, {"id": "x"})) as post:
        result = forward_completion({"messages": []}, "server-key", URL, 12.0)
    assert result.ok
    assert result.body == {"id": "x"}
    kwargs = post.call_args.kwargs
    assert kwargs["json"] == {"messages": []}
    assert kwargs["headers"]["Authorization"] == "Bearer server-key"
    assert kwargs["timeout"] == 12.0


def test_error_status_is_returned_not_raised():
    with patch("guest_gateway.services.upstream_client.requests.post", return_value=_response(429, {"error": {"message": "rate"}})):
        result = forward_completion({}, "k", URL, 1)
    assert not result.ok
    assert result.status_code == 429
    assert result.body == {"error": {"message": "rate"}}


def test_non_json_body_is_wrapped():
    with patch("guest_gateway.services.upstream_client.requests.post", return_value=_response(502, text="Bad Gateway")):
        result = forward_completion({}, "k", URL, 1)
    assert result.body == {"error": {"message": "Bad Gateway"}}


def test_timeout_maps_to_504():
    with patch("guest_gateway.services.upstream_client.requests.post", side_effect=requests.exceptions.Timeout()):
        with pytest.raises(UpstreamError) as exc:
            forward_completion({}, "k", URL, 1)
    assert exc.value.status_code == 504
    assert exc.value.code == "UPSTREAM_TIMEOUT"


def test_connection_error_maps_to_502():
    with patch("guest_gateway.services.upstream_client.requests.post", side_effect=requests.exceptions.ConnectionError()):
        with pytest.raises(UpstreamError) as exc:
            forward_completion({}, "k", URL, 1)
    assert exc.value.status_code == 502
    assert exc.value.code == "UPSTREAM_UNAVAILABLE"
