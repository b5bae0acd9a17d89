"""Typed application runtime state container."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
import threading
from typing import Any, Callable


def utc_now():
    return datetime.now(tz=timezone.utc)


@dataclass
class TimerCache:
    """Cached ad-timer durations shared by download handlers."""
    lock: Any = field(default_factory=threading.Lock)
    value: Any = None
    fetched_at: float = 0.0


@dataclass
class EdgeContext:
    """Per-process runtime context handed to every service function."""
    settings: Any
    client: Any
    log_action: Callable
    log_system: Callable
    log_exception: Callable
    timer_cache: TimerCache = field(default_factory=TimerCache)
    now: Callable = utc_now
