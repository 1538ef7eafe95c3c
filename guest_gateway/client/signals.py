"""
Weak device entropy signals for the device signature.

Each collector returns a short string. None of them is a strong identifier on
its own; together they are stable for one machine across reinstalls. A
collector may raise: fingerprint.py swaps any failure for a fixed sentinel.
"""
import hashlib
import locale
import math
import os
import platform
import shutil
import time
from pathlib import Path
from typing import Callable, Dict, List, Tuple

import numpy as np
import psutil
from PIL import Image, ImageChops, ImageDraw, ImageFont

CANVAS_SIZE = (300, 100)
CANVAS_TEXT = "SnipAsk!@#$%&*"
CANVAS_FONTS: List[Tuple[str, int]] = [
    ("arial.ttf", 14),
    ("georgia.ttf", 16),
    ("cour.ttf", 12),
    ("impact.ttf", 15),
    ("times.ttf", 13),
]

AUDIO_SAMPLE_RATE = 44100
AUDIO_FREQUENCY = 10000.0
AUDIO_SLICE = (4500, 5000)

DRM_ROOT = Path("/sys/class/drm")
INPUT_DEVICES = Path("/proc/bus/input/devices")

# INPUT_PROP_DIRECT: the device maps straight onto the screen (touchscreens)
INPUT_PROP_DIRECT = 0x2

GIB = 1024 ** 3


def _hex_digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _load_font(name: str, size: int):
    # Which faces exist is itself part of the signal
    try:
        return ImageFont.truetype(name, size)
    except OSError:
        return ImageFont.load_default()


def _gradient(size: Tuple[int, int]) -> Image.Image:
    """Left-to-right three-stop gradient: #ff6600 -> #0066ff -> #00ff66."""
    width, height = size
    stops = np.array([[255, 102, 0], [0, 102, 255], [0, 255, 102]], dtype=np.float32)
    positions = np.linspace(0.0, 1.0, width, dtype=np.float32)
    first = positions < 0.5
    t = np.where(first, positions / 0.5, (positions - 0.5) / 0.5)[:, None]
    row = np.where(
        first[:, None],
        stops[0] + (stops[1] - stops[0]) * t,
        stops[1] + (stops[2] - stops[1]) * t,
    )
    pixels = np.repeat(row[None, :, :], height, axis=0).round().astype(np.uint8)
    alpha = np.full((height, width, 1), 255, dtype=np.uint8)
    return Image.fromarray(np.concatenate([pixels, alpha], axis=2), "RGBA")


def _circle_layer(size: Tuple[int, int], center: Tuple[int, int], radius: int, fill, background) -> Image.Image:
    # background must be the identity of the blend: white for multiply, black for screen
    layer = Image.new("RGB", size, background)
    cx, cy = center
    ImageDraw.Draw(layer).ellipse((cx - radius, cy - radius, cx + radius, cy + radius), fill=fill)
    return layer


def _bezier_points(p0, p1, p2, p3, steps: int = 64):
    points = []
    for i in range(steps + 1):
        t = i / steps
        u = 1 - t
        x = u ** 3 * p0[0] + 3 * u ** 2 * t * p1[0] + 3 * u * t ** 2 * p2[0] + t ** 3 * p3[0]
        y = u ** 3 * p0[1] + 3 * u ** 2 * t * p1[1] + 3 * u * t ** 2 * p2[1] + t ** 3 * p3[1]
        points.append((x, y))
    return points


def canvas_signal() -> str:
    """
    Render a fixed scene and hash the raw pixels.

    Font rasterisation, antialiasing and available faces differ between
    machines even when the drawing commands are identical.
    """
    image = _gradient(CANVAS_SIZE)
    draw = ImageDraw.Draw(image, "RGBA")
    for i, (name, size) in enumerate(CANVAS_FONTS):
        fill = (i * 50, 100 - i * 20, i * 30 + 50, 178)
        draw.text((5, i * 18 + 5), CANVAS_TEXT, font=_load_font(name, size), fill=fill)

    rgb = image.convert("RGB")
    rgb = ImageChops.multiply(rgb, _circle_layer(CANVAS_SIZE, (150, 50), 30, (255, 128, 128), (255, 255, 255)))
    rgb = ImageChops.screen(rgb, _circle_layer(CANVAS_SIZE, (170, 50), 30, (0, 128, 0), (0, 0, 0)))

    draw = ImageDraw.Draw(rgb)
    curve = _bezier_points((10, 90), (50, 10), (150, 90), (290, 10))
    draw.line(curve, fill=(0, 0, 51), width=2)
    return _hex_digest(rgb.convert("RGBA").tobytes())


def _read(path: Path) -> str:
    return path.read_text().strip()


def graphics_signal() -> str:
    """
    GPU vendor/device/driver strings plus display capability limits from the
    DRM sysfs tree. Raises when no GPU is exposed (containers, macOS, Windows).
    """
    if not DRM_ROOT.is_dir():
        raise FileNotFoundError(str(DRM_ROOT))
    parts = []
    for card in sorted(DRM_ROOT.glob("card[0-9]")):
        device = card / "device"
        vendor = _read(device / "vendor") if (device / "vendor").exists() else "unknown"
        product = _read(device / "device") if (device / "device").exists() else "unknown"
        driver = os.path.basename(os.path.realpath(device / "driver")) if (device / "driver").exists() else "unknown"
        connectors = sorted(card.parent.glob(f"{card.name}-*"))
        modes = []
        for connector in connectors:
            modes_file = connector / "modes"
            if modes_file.exists():
                modes.extend(_read(modes_file).split())
        max_mode = max(modes, key=lambda m: _mode_area(m), default="none")
        parts.append(f"{card.name}={vendor}/{product}/{driver}/connectors:{len(connectors)}/max:{max_mode}")
    if not parts:
        raise FileNotFoundError("no DRM cards")
    return "|".join(parts)


def _mode_area(mode: str) -> int:
    try:
        width, height = mode.lower().rstrip("i").split("x")
        return int(width) * int(height)
    except ValueError:
        return 0


def _triangle(frequency: float, sample_rate: int, length: int) -> np.ndarray:
    phase = (np.arange(length, dtype=np.float64) * frequency / sample_rate) % 1.0
    return (4.0 * np.abs(phase - 0.5) - 1.0).astype(np.float32)


def _compress(signal: np.ndarray, sample_rate: int, threshold: float = -50.0, knee: float = 40.0,
              ratio: float = 12.0, attack: float = 0.0, release: float = 0.25) -> np.ndarray:
    """Feed-forward soft-knee compressor with a peak envelope follower."""
    attack_coef = math.exp(-1.0 / (attack * sample_rate)) if attack > 0 else 0.0
    release_coef = math.exp(-1.0 / (release * sample_rate))
    envelope = np.empty(len(signal), dtype=np.float32)
    current = 0.0
    for i, sample in enumerate(np.abs(signal).tolist()):
        coef = attack_coef if sample > current else release_coef
        current = coef * current + (1.0 - coef) * sample
        envelope[i] = current

    level_db = 20.0 * np.log10(np.maximum(envelope, np.float32(1e-9)))
    over = level_db - threshold
    half_knee = knee / 2.0
    gain_db = np.where(
        over <= -half_knee,
        0.0,
        np.where(
            over >= half_knee,
            over * (1.0 / ratio - 1.0),
            (1.0 / ratio - 1.0) * (over + half_knee) ** 2 / (2.0 * knee),
        ),
    )
    return (signal * np.power(10.0, gain_db / 20.0)).astype(np.float32)


def audio_signal() -> str:
    """Render one second of a 10 kHz triangle through a compressor; sum a slice."""
    tone = _triangle(AUDIO_FREQUENCY, AUDIO_SAMPLE_RATE, AUDIO_SAMPLE_RATE)
    rendered = _compress(tone, AUDIO_SAMPLE_RATE)
    start, end = AUDIO_SLICE
    return repr(float(np.sum(np.abs(rendered[start:end]), dtype=np.float64)))


def touch_points() -> str:
    """
    Number of touchscreens in the kernel input device list. Raises when the
    list is not exposed (macOS, Windows, some containers).
    """
    text = INPUT_DEVICES.read_text()
    count = 0
    for block in text.split("\n\n"):
        name = ""
        props = 0
        for line in block.splitlines():
            if line.startswith("N: Name="):
                name = line[len("N: Name="):].strip().strip('"').lower()
            elif line.startswith("B: PROP="):
                words = line[len("B: PROP="):].split() or ["0"]
                props = int(words[-1], 16)
        if props & INPUT_PROP_DIRECT or "touchscreen" in name:
            count += 1
    return str(count)


def memory_class() -> str:
    """Installed RAM bucketed like navigator.deviceMemory: power of two GB, capped at 8."""
    total_gb = psutil.virtual_memory().total / GIB
    bucket = 0.25
    while bucket * 2 <= min(total_gb, 8):
        bucket *= 2
    return f"{bucket:g}"


def timezone_name() -> str:
    offset = -time.altzone if time.daylight and time.localtime().tm_isdst else -time.timezone
    return f"{time.tzname[0]}{offset:+d}"


def language() -> str:
    lang, _ = locale.getlocale()
    return lang or os.getenv("LANG", "unknown")


def storage_quota_signal() -> str:
    """Home volume size, rounded to the nearest GB to absorb small changes."""
    total = shutil.disk_usage(Path.home()).total
    return f"q:{round(total / GIB)}GB"


def default_signals() -> List[Tuple[str, Callable[[], str]]]:
    """Named collectors in the fixed order they are concatenated."""
    return [
        ("cores", lambda: str(os.cpu_count() or "unknown")),
        ("memory", memory_class),
        ("timezone", timezone_name),
        ("language", language),
        ("platform", lambda: f"{platform.system()}/{platform.machine()}"),
        ("canvas", canvas_signal),
        ("graphics", graphics_signal),
        ("audio", audio_signal),
        ("touch_points", touch_points),
        ("storage_quota", storage_quota_signal),
    ]


SENTINELS: Dict[str, str] = {
    "canvas": "canvas-unavailable",
    "graphics": "graphics-unavailable",
    "audio": "audio-unavailable",
    "touch_points": "touch-unavailable",
    "storage_quota": "storage-unavailable",
}
