from __future__ import annotations

import hashlib
import logging
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlmodel import Session, col, select

from ..config import settings
from ..models.registration import Registration

logger = logging.getLogger(__name__)

_HASH_RE = re.compile(r"^[0-9a-f]{64}$")


def utcnow() -> datetime:
    """Naive UTC, matching how expiries are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def hash_token(token: str, pepper: str = "") -> str:
    return hashlib.sha256(f"{pepper}{token}".encode("utf-8")).hexdigest()


def new_token() -> str:
    return secrets.token_urlsafe(32)


class TokenStore:
    """
    Lookups over Registration.manage_token_hash.

    The column holds a hash for every token issued by this service, and
    possibly a plaintext token for rows written before hashing existed.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_by_hash(self, token_hash: str) -> Optional[Registration]:
        return self.session.exec(
            select(Registration).where(Registration.manage_token_hash == token_hash)
        ).first()

    def find_legacy(self, token: str) -> Optional[Registration]:
        # a 64-hex input would match a stored hash verbatim
        if _HASH_RE.match(token):
            return None
        return self.session.exec(
            select(Registration).where(Registration.manage_token_hash == token)
        ).first()

    def store(self, reg: Registration, token_hash: Optional[str], expires_at: Optional[datetime]) -> None:
        reg.manage_token_hash = token_hash
        reg.manage_token_expires_at = expires_at
        self.session.add(reg)
        self.session.flush()

    def clear_expired(self, now: datetime) -> int:
        expired = self.session.exec(
            select(Registration).where(
                col(Registration.manage_token_hash).is_not(None),
                col(Registration.manage_token_expires_at).is_not(None),
                col(Registration.manage_token_expires_at) <= now,
            )
        ).all()
        for reg in expired:
            reg.manage_token_hash = None
            reg.manage_token_expires_at = None
            self.session.add(reg)
        self.session.flush()
        return len(expired)


class ManageTokenService:
    """
    Issue, refresh, resolve and revoke manage-link tokens.

    Only sha256(pepper + token) is persisted. ttl_days <= 0 issues tokens
    that never expire. clock is injectable for tests and must return naive
    or aware UTC.
    """

    def __init__(
        self,
        session: Session,
        *,
        ttl_days: Optional[int] = None,
        pepper: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session = session
        self.store = TokenStore(session)
        self.ttl_days = settings.manage_token_ttl_days if ttl_days is None else int(ttl_days)
        self.pepper = settings.manage_token_pepper if pepper is None else pepper
        self.clock = clock

    def _now(self) -> datetime:
        return _naive_utc(self.clock())

    def _expires_at(self) -> Optional[datetime]:
        if self.ttl_days <= 0:
            return None
        return self._now() + timedelta(days=self.ttl_days)

    def _is_expired(self, reg: Registration) -> bool:
        expires_at = _naive_utc(reg.manage_token_expires_at)
        return expires_at is not None and expires_at <= self._now()

    def issue(self, reg: Registration) -> str:
        """
        Rotate: a new token replaces whatever the registration held.
        Returns the plaintext token; it is never stored.
        """
        token = new_token()
        self.store.store(reg, hash_token(token, self.pepper), self._expires_at())
        return token

    def refresh(self, reg: Registration, token: str) -> None:
        """Keep the same token and push its expiry out."""
        self.store.store(reg, hash_token(token, self.pepper), self._expires_at())

    def resolve(self, token: Optional[str]) -> Optional[Registration]:
        """
        Registration for a live token, else None. Never raises.
        """
        token = (token or "").strip()
        if not token:
            return None

        reg = self.store.find_by_hash(hash_token(token, self.pepper))
        if reg is None:
            reg = self.store.find_legacy(token)
            if reg is not None and not self._is_expired(reg):
                self._upgrade_legacy(reg, token)

        if reg is None or self._is_expired(reg):
            return None
        return reg

    def _upgrade_legacy(self, reg: Registration, token: str) -> None:
        try:
            with self.session.begin_nested():
                reg.manage_token_hash = hash_token(token, self.pepper)
                self.session.add(reg)
        except Exception:
            logger.warning("Could not rehash legacy manage token for registration %s", reg.id, exc_info=True)

    def revoke(self, reg: Registration) -> None:
        self.store.store(reg, None, None)

    def prune_expired(self) -> int:
        pruned = self.store.clear_expired(self._now())
        if pruned:
            logger.info("Pruned %d expired manage token(s)", pruned)
        return pruned
