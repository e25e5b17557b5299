"""Upload constraints and per-user rate limiting."""

import math
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath
from typing import TYPE_CHECKING, Callable, Optional

from .errors import PortabilityError, file_format_error, file_size_error, rate_limit_error
from .logs import get_logger

if TYPE_CHECKING:
    from .config import Config

logger = get_logger(__name__)

HOUR = 3600
DAY = 24 * HOUR


@dataclass
class FileConstraints:
    """What an upload may look like."""

    max_size: int = 100 * 1024 * 1024
    allowed_extensions: list[str] = field(default_factory=lambda: [".json", ".csv"])
    allowed_mime_types: list[str] = field(
        default_factory=lambda: [
            "application/json",
            "text/csv",
            "application/csv",
            "text/plain",
        ]
    )

    @classmethod
    def from_config(cls, config: "Config") -> "FileConstraints":
        return cls(max_size=config.max_upload_bytes)

    def check(
        self,
        filename: Optional[str],
        size: int,
        mime_type: Optional[str] = None,
    ) -> Optional[PortabilityError]:
        """Check an upload before reading it.

        Returns:
            The first violated constraint, or None
        """
        if size > self.max_size:
            return file_size_error(size, self.max_size)

        if filename:
            suffix = PurePath(filename).suffix.lower()
            if suffix and suffix not in self.allowed_extensions:
                return file_format_error(filename, self.allowed_extensions)

        if mime_type and mime_type.split(";")[0].strip() not in self.allowed_mime_types:
            return file_format_error(filename or mime_type, self.allowed_extensions)

        return None


class Operation(str, Enum):
    """Rate-limited operations."""

    EXPORT = "export"
    IMPORT = "import"


@dataclass
class RateLimit:
    per_hour: int
    per_day: int


class RateLimiter:
    """Per-user sliding-window limits on exports and imports."""

    def __init__(
        self,
        limits: Optional[dict[Operation, RateLimit]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize limiter.

        Args:
            limits: Limits per operation (defaults 10/50 exports, 5/20 imports)
            clock: Seconds source, injectable for tests
        """
        self.limits = limits or {
            Operation.EXPORT: RateLimit(per_hour=10, per_day=50),
            Operation.IMPORT: RateLimit(per_hour=5, per_day=20),
        }
        self.clock = clock
        self._events: dict[tuple[str, Operation], deque] = defaultdict(deque)
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: "Config") -> "RateLimiter":
        return cls(
            {
                Operation.EXPORT: RateLimit(config.exports_per_hour, config.exports_per_day),
                Operation.IMPORT: RateLimit(config.imports_per_hour, config.imports_per_day),
            }
        )

    def check(self, user_id: str, operation: Operation) -> Optional[PortabilityError]:
        """Record an attempt, or reject it when a window is full.

        Returns:
            A rate limit error with the seconds until a slot frees up, or None
        """
        operation = Operation(operation)
        limit = self.limits[operation]
        now = self.clock()

        with self._lock:
            events = self._events[(user_id, operation)]
            while events and now - events[0] >= DAY:
                events.popleft()

            in_hour = [t for t in events if now - t < HOUR]
            if len(in_hour) >= limit.per_hour:
                retry_after = math.ceil(HOUR - (now - in_hour[0]))
                return self._reject(user_id, operation, limit.per_hour, retry_after)

            if len(events) >= limit.per_day:
                retry_after = math.ceil(DAY - (now - events[0]))
                return self._reject(user_id, operation, limit.per_day, retry_after)

            events.append(now)
            return None

    def _reject(
        self, user_id: str, operation: Operation, limit: int, retry_after: int
    ) -> PortabilityError:
        logger.warning(
            "rate_limited",
            user_id=user_id,
            operation=operation.value,
            limit=limit,
            retry_after=retry_after,
        )
        return rate_limit_error(operation.value, limit, max(1, retry_after))

    def reset(self, user_id: Optional[str] = None) -> None:
        with self._lock:
            if user_id is None:
                self._events.clear()
            else:
                for key in [k for k in self._events if k[0] == user_id]:
                    del self._events[key]
