"""Epoch-millisecond helpers. All persisted timestamps use this unit."""
import time

SECOND_MS = 1000
MINUTE_MS = 60 * SECOND_MS
HOUR_MS = 60 * MINUTE_MS


def now_ms() -> int:
    return int(time.time() * 1000)


def hours_ago_ms(hours: float, now: int = None) -> int:
    if now is None:
        now = now_ms()
    return now - int(hours * HOUR_MS)
