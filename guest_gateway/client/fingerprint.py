"""
Device signature generation.

Combines the signals from signals.py into one opaque token that stays the
same for a machine across reinstalls of the client. Any signal that fails is
replaced by a fixed sentinel: partial entropy is fine, no signature is not.
"""
import hashlib
import logging
from typing import Callable, List, Optional, Sequence, Tuple

from guest_gateway.client.signals import SENTINELS, default_signals

logger = logging.getLogger(__name__)

SIGNATURE_LENGTH = 32

Signal = Tuple[str, Callable[[], str]]


def sentinel_for(name: str) -> str:
    return SENTINELS.get(name, f"{name}-unavailable")


class DeviceSignatureGenerator:
    def __init__(self, signals: Optional[Sequence[Signal]] = None):
        self.signals: List[Signal] = list(signals) if signals is not None else default_signals()

    def collect(self) -> List[Tuple[str, str]]:
        components = []
        for name, collector in self.signals:
            try:
                value = str(collector())
            except Exception as e:
                logger.debug("Signal %s unavailable: %s", name, e)
                value = sentinel_for(name)
            components.append((name, value))
        return components

    def generate(self) -> str:
        """SHA-256 over `name:value|name:value|...`, first 32 hex chars."""
        joined = "|".join(f"{name}:{value}" for name, value in self.collect())
        return hashlib.sha256(joined.encode("utf-8")).hexdigest()[:SIGNATURE_LENGTH]


def is_well_formed(signature: str) -> bool:
    return (
        isinstance(signature, str)
        and len(signature) == SIGNATURE_LENGTH
        and all(c in "0123456789abcdef" for c in signature)
    )
