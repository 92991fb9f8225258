import logging
import math
import re
import signal
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)

# ────────────────────────────────
# Time Helpers
# ────────────────────────────────


def now() -> float:
    return time.perf_counter()


_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: str) -> float:
    """Parse ``10m``, ``1h30m``, ``1.5s``, ``250ms`` (or bare seconds) into seconds."""
    text = value.strip()
    if not text:
        raise ValueError("empty duration")
    try:
        seconds = float(text)
    except ValueError:
        pos = 0
        seconds = 0.0
        for match in _DURATION_PART.finditer(text):
            if match.start() != pos:
                break
            seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
            pos = match.end()
        if pos != len(text) or pos == 0:
            raise ValueError(f"invalid duration {value!r}")
    if not math.isfinite(seconds) or seconds < 0:
        raise ValueError(f"invalid duration {value!r}")
    return seconds


def format_duration(seconds: float | None) -> str:
    if seconds is None:
        return "-"
    micros = round(seconds * 1e6)
    if micros < 1000:
        return f"{micros}µs"
    millis = round(seconds * 1e3, 2)
    if millis < 1000:
        return f"{millis:.2f}ms"
    return f"{seconds:.3f}s"


# ────────────────────────────────
# Signal Handling
# ────────────────────────────────


class GracefulKiller:
    def __init__(self, on_kill: Callable[[], None] | None = None):
        self.kill_now = False
        self.on_kill = on_kill
        signal.signal(signal.SIGINT, self.exit_gracefully)
        signal.signal(signal.SIGTERM, self.exit_gracefully)

    def exit_gracefully(self, signum, frame):
        if self.kill_now:
            # Second signal: give up on a graceful stop.
            raise KeyboardInterrupt
        print("\n[!] Received shutdown signal. Finishing current queries...")
        logger.info(f"Received signal {signum}, stopping workers")
        self.kill_now = True
        if self.on_kill:
            self.on_kill()
