"""
Client-side identity cache.

Persists the installation's client token, the cached device signature (7-day
TTL) and a local mirror of the last usage the gateway reported. The gateway is
the only authority on quota; the mirror is for display.
"""
import json
import logging
import os
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from guest_gateway.client.fingerprint import DeviceSignatureGenerator

logger = logging.getLogger(__name__)

SIGNATURE_TTL_SECONDS = 7 * 24 * 60 * 60
CLIENT_TOKEN_PREFIX = "snip-"


def default_cache_path() -> Path:
    override = os.getenv("GUEST_IDENTITY_FILE")
    if override:
        return Path(override)
    return Path.home() / ".guest_gateway" / "identity.json"


def _utc_date() -> str:
    return datetime.now(timezone.utc).date().isoformat()


class IdentityCache:
    def __init__(self, path: Optional[Path] = None, clock=time.time):
        self.path = Path(path) if path is not None else default_cache_path()
        self.clock = clock
        self._signature: Optional[str] = None

    def _load(self) -> Dict[str, Any]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Identity cache at %s unreadable, starting fresh: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f)
        os.replace(tmp, self.path)

    def _update(self, **values: Any) -> None:
        data = self._load()
        data.update(values)
        self._save(data)

    def get_client_token(self) -> str:
        """The installation token: generated once, then reused forever."""
        data = self._load()
        token = data.get("clientToken")
        if token:
            return token
        token = CLIENT_TOKEN_PREFIX + str(uuid.uuid4())
        self._update(clientToken=token)
        return token

    def get_device_signature(self, generator: DeviceSignatureGenerator) -> str:
        """
        Cached signature if younger than 7 days, else a fresh one.

        Regenerating after expiry tolerates driver/hardware drift; the gateway
        keeps using the signature an existing identity registered with.
        """
        if self._signature:
            return self._signature

        data = self._load()
        signature = data.get("deviceSignature")
        timestamp = data.get("signatureTimestamp")
        if signature and timestamp and (self.clock() - timestamp) < SIGNATURE_TTL_SECONDS:
            self._signature = signature
            return signature

        signature = generator.generate()
        self._update(deviceSignature=signature, signatureTimestamp=self.clock())
        self._signature = signature
        return signature

    def regenerate_signature(self, generator: DeviceSignatureGenerator) -> str:
        self.invalidate_signature()
        return self.get_device_signature(generator)

    def invalidate_signature(self) -> None:
        self._signature = None
        data = self._load()
        data.pop("deviceSignature", None)
        data.pop("signatureTimestamp", None)
        self._save(data)

    def record_usage(self, demo: Dict[str, Any]) -> None:
        """Mirror the `_demo` block from the last gateway response."""
        self._update(usageCount=int(demo.get("usage", 0)), usageDate=_utc_date())

    def get_cached_usage(self, limit: int) -> Dict[str, int]:
        data = self._load()
        if data.get("usageDate") != _utc_date():
            return {"count": 0, "remaining": limit, "limit": limit}
        count = int(data.get("usageCount", 0))
        return {"count": count, "remaining": max(0, limit - count), "limit": limit}
