"""
Guest Mode caller: attaches identity metadata to a completion request and
sends it through the quota gateway.
"""
import logging
from typing import Any, Dict, Optional

import requests

from guest_gateway.client.fingerprint import DeviceSignatureGenerator
from guest_gateway.client.identity_cache import IdentityCache
from guest_gateway.core.config import DEFAULT_DAILY_LIMIT

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60

ERROR_MESSAGES = {
    "BANNED": "Access denied. Please contact support.",
    "VELOCITY_BAN": "Too many requests. Please slow down and try again later.",
    "LIMIT_EXCEEDED": "Daily limit reached. Get your own free API key at console.groq.com!",
    "DEVICE_LIMIT_EXCEEDED": "This device has reached its daily limit. Get your own free API key at console.groq.com!",
    "MISSING_ID": "Please update your extension to the latest version.",
}


class GuestModeError(Exception):
    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class GuestClient:
    def __init__(
        self,
        gateway_url: str,
        cache: Optional[IdentityCache] = None,
        generator: Optional[DeviceSignatureGenerator] = None,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.gateway_url = gateway_url
        self.cache = cache or IdentityCache()
        self.generator = generator or DeviceSignatureGenerator()
        self.session = session or requests.Session()
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.gateway_url) and "YOUR_SUBDOMAIN" not in self.gateway_url

    def build_body(self, request_body: Dict[str, Any], parallel_count: int = 1) -> Dict[str, Any]:
        meta = dict(request_body.get("_meta") or {})
        meta.update(
            clientUuid=self.cache.get_client_token(),
            deviceFingerprint=self.cache.get_device_signature(self.generator),
            parallelCount=parallel_count,
        )
        body = dict(request_body)
        body["_meta"] = meta
        return body

    def send(self, request_body: Dict[str, Any], parallel_count: int = 1) -> Dict[str, Any]:
        """
        POST a completion request through the gateway.

        Raises GuestModeError for every rejection (quota, ban, velocity,
        outdated client, upstream failure). On success returns the upstream
        JSON, including the `_demo` usage block.
        """
        if not self.is_configured():
            raise GuestModeError("Guest Mode is not configured. Please add your own API key.")

        try:
            response = self.session.post(
                self.gateway_url,
                json=self.build_body(request_body, parallel_count),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise GuestModeError(f"Guest Mode service unreachable: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        code = data.get("code")
        if code in ERROR_MESSAGES:
            if code in ("LIMIT_EXCEEDED", "DEVICE_LIMIT_EXCEEDED"):
                self.cache.record_usage({"usage": data.get("limit", DEFAULT_DAILY_LIMIT)})
            raise GuestModeError(data.get("message") or ERROR_MESSAGES[code], code, response.status_code)

        if not response.ok:
            error = data.get("error")
            if isinstance(error, dict):
                error = error.get("message")
            raise GuestModeError(error or "Guest Mode service error. Please try again later.", code, response.status_code)

        if isinstance(data.get("_demo"), dict):
            self.cache.record_usage(data["_demo"])
        return data
