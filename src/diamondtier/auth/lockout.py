"""Failed-login lockout for the admin and affiliate portals.

Failures are counted per key (the email and the client IP) inside a sliding
window. Once a key reaches the threshold, further logins for it are refused
until the oldest failure ages out. State is in-process memory, so each API
worker keeps its own counts.
"""

import time
from collections import defaultdict

from diamondtier.logging_config import get_logger

logger = get_logger(__name__)


class AccountLocked(Exception):
    """Too many recent failures for a key."""

    def __init__(self, retry_after: int):
        self.retry_after = retry_after
        super().__init__(f"Too many failed login attempts. Try again in {retry_after // 60 + 1} minutes.")


class LoginLockout:
    def __init__(self, scope: str, threshold: int = 5, window_seconds: int = 900):
        self.scope = scope
        self.threshold = threshold
        self.window_seconds = window_seconds
        self._failures: dict[str, list[float]] = defaultdict(list)

    def keys(self, email: str, ip: str) -> tuple[str, str]:
        return f"{self.scope}:email:{email.lower()}", f"{self.scope}:ip:{ip}"

    def check(self, *keys: str) -> None:
        """Raise AccountLocked if any key is over the threshold."""
        now = time.time()
        for key in keys:
            recent = [t for t in self._failures.get(key, ()) if now - t < self.window_seconds]
            if not recent:
                self._failures.pop(key, None)
                continue
            self._failures[key] = recent
            if len(recent) >= self.threshold:
                retry_after = int(self.window_seconds - (now - recent[0]))
                logger.warning("login_locked_out", key=key, retry_after=retry_after)
                raise AccountLocked(retry_after)

    def record_failure(self, *keys: str) -> None:
        now = time.time()
        for key in keys:
            self._failures[key].append(now)

    def clear(self, *keys: str) -> None:
        for key in keys:
            self._failures.pop(key, None)

    def reset(self) -> None:
        self._failures.clear()


admin_lockout = LoginLockout("admin")
affiliate_lockout = LoginLockout("affiliate")
