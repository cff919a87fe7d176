"""
Sliding-window rate limiter persisted as one small JSON file per identifier.

Files live under RATE_LIMIT_DIR and are named by sha256(identifier), holding
{"attempts": [unix timestamps]}. Every read-modify-write holds an exclusive
flock on a sibling ".lock" file, and the JSON is replaced atomically, so
concurrent workers never lose or corrupt attempts.
"""
from __future__ import annotations

import fcntl
import hashlib
import json
import logging
import math
import os
import tempfile
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from app.chms.errors import RateLimitExceeded

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_WINDOW_SECONDS = 300


@dataclass(frozen=True)
class RateLimiter:
    root: Path
    clock: Callable[[], float] = field(default=time.time)

    def _path(self, identifier: str) -> Path:
        return self.root / hashlib.sha256(identifier.encode("utf-8")).hexdigest()

    def _locked(self, identifier: str):
        self.root.mkdir(parents=True, exist_ok=True)
        return self._hold(self._path(identifier))

    @staticmethod
    @contextmanager
    def _hold(path: Path) -> Iterator[Path]:
        # Lock files are never deleted; a waiting worker must lock the same inode.
        with open(str(path) + ".lock", "a") as lock:
            fcntl.flock(lock.fileno(), fcntl.LOCK_EX)
            try:
                yield path
            finally:
                fcntl.flock(lock.fileno(), fcntl.LOCK_UN)

    @staticmethod
    def _read(path: Path) -> list[float]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, ValueError):
            logger.warning("Discarding unreadable rate-limit file %s", path.name)
            return []
        attempts = data.get("attempts") if isinstance(data, dict) else None
        if not isinstance(attempts, list):
            return []
        return [float(t) for t in attempts if isinstance(t, (int, float))]

    def _write(self, path: Path, attempts: list[float]) -> None:
        fd, tmp = tempfile.mkstemp(dir=str(self.root), prefix=".tmp-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({"attempts": attempts}, f)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def _in_window(self, attempts: list[float], window_seconds: int) -> list[float]:
        now = self.clock()
        return [t for t in attempts if now - t < window_seconds]

    def check(
        self,
        identifier: str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
    ) -> bool:
        """True (and the attempt is recorded) when allowed; False when the window is full."""
        with self._locked(identifier) as path:
            attempts = self._in_window(self._read(path), window_seconds)
            if len(attempts) >= max_attempts:
                self._write(path, attempts)
                return False
            attempts.append(self.clock())
            self._write(path, attempts)
            return True

    def clear(self, identifier: str) -> None:
        with self._locked(identifier) as path:
            path.unlink(missing_ok=True)

    def remaining(
        self,
        identifier: str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
    ) -> int:
        with self._locked(identifier) as path:
            attempts = self._in_window(self._read(path), window_seconds)
        return max(0, max_attempts - len(attempts))

    def reset_time(self, identifier: str, window_seconds: int = DEFAULT_WINDOW_SECONDS) -> int:
        """Seconds until the oldest attempt in the window expires (0 when not limited)."""
        with self._locked(identifier) as path:
            attempts = self._in_window(self._read(path), window_seconds)
        if not attempts:
            return 0
        return max(0, int(math.ceil(window_seconds - (self.clock() - min(attempts)))))

    def cleanup(self, max_age: int = 86400) -> int:
        """Delete state files untouched for max_age seconds. Returns files removed."""
        if not self.root.is_dir():
            return 0
        now = self.clock()
        deleted = 0
        for p in list(self.root.iterdir()):
            if not p.is_file() or p.name.endswith(".lock") or p.name.startswith(".tmp-"):
                continue
            with self._hold(p):
                try:
                    stale = now - p.stat().st_mtime > max_age
                except FileNotFoundError:
                    continue
                if stale:
                    p.unlink(missing_ok=True)
                    deleted += 1
        logger.info("Rate-limit cleanup removed %s files", deleted)
        return deleted

    def enforce(
        self,
        identifier: str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
    ) -> None:
        if self.check(identifier, max_attempts, window_seconds):
            return
        retry_after = self.reset_time(identifier, window_seconds)
        minutes = max(1, math.ceil(retry_after / 60))
        logger.warning("Rate limit exceeded (retry_after=%ss)", retry_after)
        raise RateLimitExceeded(
            f"Too many requests. Please try again in {minutes} minute(s).",
            retry_after=retry_after,
        )


def rate_limiter_from_config(config: dict) -> RateLimiter:
    return RateLimiter(root=Path(config.get("RATE_LIMIT_DIR") or Path(os.getcwd()) / "cache" / "rate_limits"))
