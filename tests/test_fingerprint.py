"""
test_fingerprint.py — Device signature generation and the client identity cache.
"""

import json

from guest_gateway.client import signals
from guest_gateway.client.fingerprint import DeviceSignatureGenerator, is_well_formed, sentinel_for
from guest_gateway.client.identity_cache import SIGNATURE_TTL_SECONDS, IdentityCache


def _fixed(value):
    return lambda: value


def _broken():
    raise RuntimeError("no GPU")


class CountingGenerator:
    def __init__(self):
        self.calls = 0

    def generate(self):
        self.calls += 1
        return f"{self.calls:032x}"


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


# ── Signature ─────────────────────────────────────────────────────────────────

def test_signature_is_32_hex_and_stable():
    generator = DeviceSignatureGenerator([("cores", _fixed("8")), ("canvas", _fixed("abc"))])
    first = generator.generate()
    assert is_well_formed(first)
    assert generator.generate() == first


def test_signature_changes_with_signals():
    a = DeviceSignatureGenerator([("cores", _fixed("8"))]).generate()
    b = DeviceSignatureGenerator([("cores", _fixed("4"))]).generate()
    assert a != b


def test_failing_signal_degrades_to_sentinel():
    broken = DeviceSignatureGenerator([("cores", _fixed("8")), ("graphics", _broken)])
    sentinel = DeviceSignatureGenerator([("cores", _fixed("8")), ("graphics", _fixed("graphics-unavailable"))])
    assert broken.generate() == sentinel.generate()


def test_unknown_signal_sentinel():
    assert sentinel_for("touch_points") == "touch-unavailable"
    assert sentinel_for("cores") == "cores-unavailable"
    assert sentinel_for("storage_quota") == "storage-unavailable"


def test_default_signals_produce_a_signature():
    generator = DeviceSignatureGenerator()
    signature = generator.generate()
    assert is_well_formed(signature)
    assert generator.generate() == signature


def test_default_signal_order():
    names = [name for name, _ in signals.default_signals()]
    assert names == [
        "cores", "memory", "timezone", "language", "platform",
        "canvas", "graphics", "audio", "touch_points", "storage_quota",
    ]


def test_audio_signal_is_deterministic():
    assert signals.audio_signal() == signals.audio_signal()


def test_memory_class_is_bucketed():
    assert signals.memory_class() in {"0.25", "0.5", "1", "2", "4", "8"}


# ── Identity cache ────────────────────────────────────────────────────────────

def test_client_token_persists(tmp_path):
    path = tmp_path / "identity.json"
    token = IdentityCache(path).get_client_token()
    assert token.startswith("snip-")
    assert IdentityCache(path).get_client_token() == token


def test_signature_cached_within_ttl(tmp_path):
    path = tmp_path / "identity.json"
    clock = FakeClock()
    generator = CountingGenerator()
    first = IdentityCache(path, clock=clock).get_device_signature(generator)
    clock.now += SIGNATURE_TTL_SECONDS - 1
    assert IdentityCache(path, clock=clock).get_device_signature(generator) == first
    assert generator.calls == 1


def test_signature_regenerated_after_ttl(tmp_path):
    path = tmp_path / "identity.json"
    clock = FakeClock()
    generator = CountingGenerator()
    first = IdentityCache(path, clock=clock).get_device_signature(generator)
    clock.now += SIGNATURE_TTL_SECONDS + 1
    second = IdentityCache(path, clock=clock).get_device_signature(generator)
    assert second != first
    assert generator.calls == 2


def test_regenerate_signature_keeps_token(tmp_path):
    cache = IdentityCache(tmp_path / "identity.json")
    generator = CountingGenerator()
    token = cache.get_client_token()
    first = cache.get_device_signature(generator)
    assert cache.regenerate_signature(generator) != first
    assert cache.get_client_token() == token


def test_corrupt_cache_starts_fresh(tmp_path):
    path = tmp_path / "identity.json"
    path.write_text("{oops")
    assert IdentityCache(path).get_client_token().startswith("snip-")


def test_cached_usage_resets_on_new_day(tmp_path):
    path = tmp_path / "identity.json"
    cache = IdentityCache(path)
    cache.record_usage({"usage": 7, "limit": 15, "remaining": 8})
    assert cache.get_cached_usage(15) == {"count": 7, "remaining": 8, "limit": 15}

    data = json.loads(path.read_text())
    data["usageDate"] = "2000-01-01"
    path.write_text(json.dumps(data))
    assert cache.get_cached_usage(15) == {"count": 0, "remaining": 15, "limit": 15}


# ── Touch points ──────────────────────────────────────────────────────────────

INPUT_DEVICES_SAMPLE = """I: Bus=0019 Vendor=0000 Product=0001 Version=0000
N: Name="Power Button"
B: PROP=0
B: EV=3

I: Bus=0018 Vendor=04f3 Product=2a1c Version=0100
N: Name="ELAN2514:00 04F3:2A1C"
B: PROP=2
B: EV=1b

I: Bus=0003 Vendor=222a Product=0001 Version=0110
N: Name="ILITEK Multi-Touch TouchScreen"
B: PROP=
B: EV=b
"""


def test_touch_points_counts_direct_devices(tmp_path, monkeypatch):
    devices = tmp_path / "devices"
    devices.write_text(INPUT_DEVICES_SAMPLE)
    monkeypatch.setattr(signals, "INPUT_DEVICES", devices)
    assert signals.touch_points() == "2"


def test_touch_points_without_input_list_uses_sentinel(tmp_path, monkeypatch):
    monkeypatch.setattr(signals, "INPUT_DEVICES", tmp_path / "missing")
    generator = DeviceSignatureGenerator([("touch_points", signals.touch_points)])
    assert generator.collect() == [("touch_points", "touch-unavailable")]
