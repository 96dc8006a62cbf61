"""
auth/delivery.py -- Out-of-band delivery of one-time codes.

AuthService hands every freshly issued code to a CodeSender. Production
deployments plug in an SMS gateway client with the same send() signature;
LogCodeSender is the development stand-in and simply logs the code.
"""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger("photoauth.auth.delivery")


class CodeSender(Protocol):
    def send(self, phone: str, code: str) -> None: ...


class LogCodeSender:
    """Write the code to the application log instead of sending an SMS."""

    def send(self, phone: str, code: str) -> None:
        logger.info("OTP for %s: %s", phone, code)
