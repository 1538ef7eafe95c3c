"""
Thin pass-through to the upstream chat-completions API.

One POST, no retries. The request body is forwarded verbatim; credentials are
held server-side and never come from the client.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict

import requests

from guest_gateway.core.errors import UpstreamError

logger = logging.getLogger(__name__)


@dataclass
class UpstreamResult:
    status_code: int
    body: Dict[str, Any]

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def _parse_body(response: requests.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {"error": {"message": response.text[:2000]}}
    if not isinstance(data, dict):
        return {"data": data}
    return data


def forward_completion(payload: Dict[str, Any], api_key: str, url: str, timeout: float) -> UpstreamResult:
    """
    POST the sanitized payload upstream and return its status and JSON body.

    Raises:
        UpstreamError: on timeout (504) or when the upstream cannot be reached (502).
            A non-2xx answer is not an exception; it comes back as a result
            with ok == False so the caller can pass it through unchanged.
    """
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    try:
        response = requests.post(url, json=payload, headers=headers, timeout=timeout)
    except requests.exceptions.Timeout as e:
        logger.warning("Upstream timeout after %ss: %s", timeout, e)
        raise UpstreamError("The AI service did not respond in time.", status_code=504, code="UPSTREAM_TIMEOUT") from e
    except requests.exceptions.RequestException as e:
        logger.warning("Upstream request failed: %s", e)
        raise UpstreamError("The AI service is unreachable. Please try again later.") from e

    result = UpstreamResult(status_code=response.status_code, body=_parse_body(response))
    if not result.ok:
        logger.warning("Upstream returned %s", result.status_code)
    return result
