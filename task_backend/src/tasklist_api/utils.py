from __future__ import annotations

from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Callable, Dict, Optional


class MonotonicClock:
    """
    UTC wall clock that never returns the same instant twice.

    When the underlying clock has not advanced (or went backwards) since the
    previous call, the previous instant plus one microsecond is returned.
    """

    def __init__(self, now: Optional[Callable[[], datetime]] = None) -> None:
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._last: Optional[datetime] = None
        self._lock = Lock()

    def __call__(self) -> datetime:
        with self._lock:
            current = self._now()
            if self._last is not None and current <= self._last:
                current = self._last + timedelta(microseconds=1)
            self._last = current
            return current


# Process-wide clock shared by the storage backends.
utc_now = MonotonicClock()


# PUBLIC_INTERFACE
def success_envelope(data: Any = None, **extra: Any) -> Dict[str, Any]:
    """
    Build the standard success envelope.

    Args:
        data: Payload placed under "data"; omitted when None.
        **extra: Additional top-level keys (e.g. cached, message, id).

    Returns:
        Dict with keys: success, data (optional) and any extras.
    """
    body: Dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body


# PUBLIC_INTERFACE
def error_envelope(message: str) -> Dict[str, Any]:
    """Build the standard error envelope: {success: false, error: message}."""
    return {"success": False, "error": message}
