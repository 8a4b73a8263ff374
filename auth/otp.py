"""
auth/otp.py -- One-time code redemption rules.

Expiry is lazy: nothing sweeps stale codes in the background. A code is
judged at the moment someone tries to redeem it:

  no AVAILABLE match for (user, code, purpose)  -> BadRequest
  match, but expires_at has passed              -> mark EXPIRED, BadRequest
  match, still valid                            -> mark USED, success

Both failures return the same message so a caller cannot tell a wrong code
from an expired one.
"""

from __future__ import annotations

import logging
from datetime import datetime

from auth.errors import ErrorKind, Outcome
from auth.models import OTP, OTPPurpose, OTPStatus
from auth.store import OTPStore, utc_now

logger = logging.getLogger("inkwell.auth.otp")

INVALID_OTP_MESSAGE = "OTP is not valid"


def is_expired(otp: OTP, now: datetime | None = None) -> bool:
    return datetime.fromisoformat(otp.expires_at) < (now or utc_now())


def redeem_otp(
    store: OTPStore,
    user_id: int,
    code: str,
    purpose: OTPPurpose,
    now: datetime | None = None,
) -> Outcome[OTP]:
    """Consume a code. On success the returned OTP has status USED."""
    otp = store.find_available(user_id, code, purpose)
    if otp is None:
        return Outcome.failure(ErrorKind.BAD_REQUEST, INVALID_OTP_MESSAGE)

    if is_expired(otp, now):
        store.transition(otp.id, OTPStatus.EXPIRED)
        logger.info("Expired OTP presented for user_id=%d", user_id)
        return Outcome.failure(ErrorKind.BAD_REQUEST, INVALID_OTP_MESSAGE)

    if not store.transition(otp.id, OTPStatus.USED):
        # A concurrent redemption won the compare-and-set.
        return Outcome.failure(ErrorKind.BAD_REQUEST, INVALID_OTP_MESSAGE)

    otp.status = OTPStatus.USED
    return Outcome.success(otp)
