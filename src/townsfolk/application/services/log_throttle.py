from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Tuple


DEFAULT_LOG_INTERVAL_SECONDS = 30.0


class RateLimitedLogger:
    """Emit at most one record per (event_type, entity_id) per interval.

    Suppressed repeats are counted and reported on the next emitted record
    for the same key as ``extra["suppressed"]``.
    """

    def __init__(
        self,
        logger: logging.Logger,
        *,
        interval_seconds: float = DEFAULT_LOG_INTERVAL_SECONDS,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._logger = logger
        self._interval = max(0.0, float(interval_seconds))
        self._clock = clock or time.monotonic
        self._last_emitted: Dict[Tuple[str, str], float] = {}
        self._suppressed: Dict[Tuple[str, str], int] = {}

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def log(self, level: int, event_type: str, entity_id: str | None, message: str, *args: Any, **fields: Any) -> bool:
        key = (str(event_type), str(entity_id or "-"))
        now = self._clock()
        last = self._last_emitted.get(key)
        if last is not None and now - last < self._interval:
            self._suppressed[key] = self._suppressed.get(key, 0) + 1
            return False

        self._last_emitted[key] = now
        extra = {"event_type": key[0], "entity_id": key[1], "suppressed": self._suppressed.pop(key, 0)}
        extra.update(fields)
        self._logger.log(level, message, *args, extra=extra)
        return True

    def debug(self, event_type: str, entity_id: str | None, message: str, *args: Any, **fields: Any) -> bool:
        return self.log(logging.DEBUG, event_type, entity_id, message, *args, **fields)

    def info(self, event_type: str, entity_id: str | None, message: str, *args: Any, **fields: Any) -> bool:
        return self.log(logging.INFO, event_type, entity_id, message, *args, **fields)

    def warning(self, event_type: str, entity_id: str | None, message: str, *args: Any, **fields: Any) -> bool:
        return self.log(logging.WARNING, event_type, entity_id, message, *args, **fields)

    def suppressed_count(self, event_type: str, entity_id: str | None) -> int:
        return self._suppressed.get((str(event_type), str(entity_id or "-")), 0)

    def reset(self) -> None:
        self._last_emitted.clear()
        self._suppressed.clear()
