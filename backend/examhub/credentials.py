"""Credential lifecycle for a `User`: passwords, one-time tokens, lockout.

`CredentialManager` owns every mutation of the credential fields on a
user record and persists through an injected store, so it can be driven
in tests with an in-memory store and a frozen clock.

Lockout state machine (`login_attempts` / `lock_until`):

- a successful login resets attempts to 0 and clears the lock;
- a failed login after the lock has expired restarts the window with
  `login_attempts = 1`;
- otherwise a failed login increments the counter and, on reaching the
  threshold while not already locked, locks the account.

`is_locked` is a pure query. An expired lock stops reporting locked,
but its stale `lock_until` and `login_attempts` stay on the record until
the next failed login resets them.
"""

import hashlib
import hmac
import json
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union
from passlib.context import CryptContext
from . import models
from .config import settings
from .errors import TokenError
from .repositories import EntityStore

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
TOKEN_BYTES = 32

logger = logging.getLogger("examhub.auth")

Clock = Callable[[], datetime]


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo on the way back; treat naive values as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CredentialManager:
    """Password hashing, one-time tokens and failed-login lockout."""

    def __init__(self, store: EntityStore, clock: Optional[Clock] = None,
                 max_attempts: Optional[int] = None, lock_time: Optional[timedelta] = None,
                 reset_ttl: Optional[timedelta] = None, verification_ttl: Optional[timedelta] = None):
        self.store = store
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.max_attempts = max_attempts or settings.LOCKOUT_MAX_ATTEMPTS
        self.lock_time = lock_time or timedelta(hours=settings.LOCKOUT_HOURS)
        self.reset_ttl = reset_ttl or timedelta(minutes=settings.RESET_TOKEN_MINUTES)
        self.verification_ttl = verification_ttl or timedelta(hours=settings.VERIFY_TOKEN_HOURS)

    def now(self) -> datetime:
        return _aware(self.clock())

    # -------------------- passwords --------------------

    def set_password(self, user: models.User, plaintext: str, is_new: bool = False) -> bool:
        """Hash and store `plaintext` as the user's password.

        Re-submitting the current password leaves the hash untouched and
        returns False. For existing users `password_changed_at` is
        backdated by one second so a session token issued in the same
        second as the change still passes `changed_password_after`.
        """
        if user.password_hash and not is_new and self.verify_password(user, plaintext):
            return False
        user.password_hash = PWD_CTX.hash(plaintext)
        if not is_new:
            user.password_changed_at = self.now() - timedelta(seconds=1)
        return True

    def verify_password(self, user: models.User, plaintext: str) -> bool:
        """Check `plaintext` against the stored hash (constant-time)."""
        if not user.password_hash:
            return False
        return PWD_CTX.verify(plaintext, user.password_hash)

    def changed_password_after(self, user: models.User, issued_at: Union[int, float, datetime]) -> bool:
        """Return True if a session token issued at `issued_at` predates the last password change."""
        changed = _aware(user.password_changed_at)
        if changed is None:
            return False
        if isinstance(issued_at, datetime):
            issued_at = _aware(issued_at).timestamp()
        return int(issued_at) < int(changed.timestamp())

    # -------------------- lockout --------------------

    def is_locked(self, user: models.User) -> bool:
        lock_until = _aware(user.lock_until)
        return lock_until is not None and lock_until > self.now()

    def register_failed_login(self, user: models.User) -> models.User:
        """Apply the failed-login transition and persist the user."""
        now = self.now()
        lock_until = _aware(user.lock_until)
        if lock_until is not None and now >= lock_until:
            user.login_attempts = 1
            user.lock_until = None
        else:
            user.login_attempts += 1
            if user.login_attempts >= self.max_attempts and not self.is_locked(user):
                user.lock_until = now + self.lock_time
                logger.warning(
                    "account_locked %s",
                    json.dumps({"user_id": user.id, "lock_until": user.lock_until.isoformat()}),
                )
        return self.store.save(user)

    def register_successful_login(self, user: models.User) -> models.User:
        user.last_login = self.now()
        user.login_attempts = 0
        user.lock_until = None
        return self.store.save(user)

    # -------------------- one-time tokens --------------------

    @staticmethod
    def hash_token(raw: str) -> str:
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    def generate_password_reset_token(self, user: models.User) -> str:
        """Issue a password reset secret valid for `reset_ttl`.

        Only the digest and expiry are stored on the user; the returned
        raw secret cannot be recovered later.
        """
        raw = secrets.token_hex(TOKEN_BYTES)
        user.password_reset_token = self.hash_token(raw)
        user.password_reset_expires = self.now() + self.reset_ttl
        self.store.save(user)
        return raw

    def generate_verification_token(self, user: models.User) -> str:
        """Issue an email verification secret valid for `verification_ttl`."""
        raw = secrets.token_hex(TOKEN_BYTES)
        user.verification_token = self.hash_token(raw)
        user.verification_token_expires = self.now() + self.verification_ttl
        self.store.save(user)
        return raw

    def _check_token(self, raw: str, digest: Optional[str], expires: Optional[datetime]) -> None:
        if not raw or not digest or not hmac.compare_digest(self.hash_token(raw), digest):
            raise TokenError("token is invalid or has already been used")
        expires = _aware(expires)
        if expires is None or self.now() > expires:
            raise TokenError("token has expired")

    def reset_password(self, user: models.User, raw: str, new_password: str) -> models.User:
        """Consume a reset secret and set `new_password`."""
        self._check_token(raw, user.password_reset_token, user.password_reset_expires)
        user.password_reset_token = None
        user.password_reset_expires = None
        self.set_password(user, new_password)
        return self.store.save(user)

    def verify_email(self, user: models.User, raw: str) -> models.User:
        """Consume a verification secret and mark the user verified."""
        self._check_token(raw, user.verification_token, user.verification_token_expires)
        user.verification_token = None
        user.verification_token_expires = None
        user.is_verified = True
        return self.store.save(user)
