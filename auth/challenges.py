"""
auth/challenges.py -- In-memory one-time-code challenges keyed by phone number.

Lifecycle of a Challenge:
  request()  -- creates it, replacing whatever was there for that phone
  verify()   -- consumes one attempt; deletes it on success, on expiry
                detection, or once the attempt budget is spent

Attempt counting: the counter is incremented BEFORE the code is compared.
With the default budget of 3, the first three verify() calls are compared
against the code (so a correct code on the third call succeeds) and every
later call fails with too_many_attempts.

Concurrency: request(), verify() and pending() for a phone run under one lock
from a fixed pool, picked by hashing the phone. Each call is atomic with
respect to the others on that key. Two phones share a lock only when they hash
to the same stripe, and the pool never grows with the number of phones seen.
Critical sections contain no await, so the store is equally safe on the event
loop and in FastAPI's threadpool.

There is no background reaper. Expired challenges are dropped when verify()
next touches them or request() overwrites them. Nothing is persisted; a
restart invalidates every pending code.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hmac
import logging
import re
import secrets
import threading
from dataclasses import replace
from datetime import timedelta
from typing import Optional

from auth.errors import ValidationError
from auth.models import Challenge, ChallengeFailure, ChallengeResult
from core.clock import Clock

logger = logging.getLogger("photoauth.auth.challenges")

_PHONE_RE = re.compile(r"^\+?[1-9]\d{1,14}$")
_WHITESPACE_RE = re.compile(r"\s+")

DEFAULT_TTL_SECONDS = 300
DEFAULT_MAX_ATTEMPTS = 3
LOCK_STRIPES = 64


def normalize_phone(raw: Optional[str]) -> str:
    """Strip whitespace and check the E.164-ish shape the service accepts.

    Raises ValidationError for anything that is not 2-15 digits with an
    optional leading '+' and a non-zero first digit.
    """
    if not raw or not isinstance(raw, str):
        raise ValidationError("Invalid phone number", code="invalid_phone")
    phone = _WHITESPACE_RE.sub("", raw)
    if not _PHONE_RE.match(phone):
        raise ValidationError("Invalid phone number", code="invalid_phone")
    return phone


def generate_code() -> str:
    """Return a uniformly random 6-digit code (100000-999999)."""
    return str(100000 + secrets.randbelow(900000))


class ChallengeStore:
    """Holds at most one live Challenge per phone.

    Usage:
        store = ChallengeStore(clock=SystemClock())
        code = store.request("15551234567")
        result = store.verify("15551234567", code)   # ChallengeResult(valid=True)
    """

    def __init__(
        self,
        clock: Clock,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._clock = clock
        self._ttl = timedelta(seconds=ttl_seconds)
        self._max_attempts = max_attempts
        self._challenges: dict[str, Challenge] = {}
        self._locks = tuple(threading.Lock() for _ in range(LOCK_STRIPES))

    def _lock_for(self, phone: str) -> threading.Lock:
        return self._locks[hash(phone) % len(self._locks)]

    def request(self, phone: str) -> str:
        """Issue a fresh code for phone, superseding any earlier challenge."""
        code = generate_code()
        with self._lock_for(phone):
            self._challenges[phone] = Challenge(
                code=code,
                expires_at=self._clock.now() + self._ttl,
                attempts=0,
            )
        logger.info("Challenge issued for %s", phone)
        return code

    def verify(self, phone: str, supplied_code: str) -> ChallengeResult:
        """Check supplied_code against the live challenge for phone."""
        with self._lock_for(phone):
            challenge = self._challenges.get(phone)
            if challenge is None:
                return ChallengeResult(valid=False, reason=ChallengeFailure.not_found)

            if self._clock.now() > challenge.expires_at:
                del self._challenges[phone]
                return ChallengeResult(valid=False, reason=ChallengeFailure.expired)

            if challenge.attempts >= self._max_attempts:
                del self._challenges[phone]
                return ChallengeResult(valid=False, reason=ChallengeFailure.too_many_attempts)

            challenge.attempts += 1
            if not hmac.compare_digest(challenge.code.encode(), str(supplied_code).encode()):
                return ChallengeResult(valid=False, reason=ChallengeFailure.invalid_code)

            del self._challenges[phone]

        logger.info("Challenge verified for %s", phone)
        return ChallengeResult(valid=True)

    def pending(self, phone: str) -> Optional[Challenge]:
        """Return a copy of the live challenge for phone, or None. Does not reap."""
        with self._lock_for(phone):
            challenge = self._challenges.get(phone)
            return replace(challenge) if challenge is not None else None
