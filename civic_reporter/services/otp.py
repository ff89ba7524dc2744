"""
Email verification with one-time codes kept in Redis.

A code is issued on registration and on request. Verifying it marks the
account as verified. Delivery goes through an ``OtpSender``; the default one
only logs, since mail delivery is handled outside this service.
"""
import hashlib
import random
import secrets

from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from civic_reporter.core.config import settings
from civic_reporter.core.errors import RateLimitError, UnexpectedError, ValidationError
from civic_reporter.core.logging import get_logger
from civic_reporter.crud import user as crud
from civic_reporter.models import User
from civic_reporter.services.redis import get_redis

logger = get_logger("civic_reporter.otp")

OTP_KEY_TEMPLATE = "otp:email:{email}"
OTP_FAIL_KEY_TEMPLATE = "otp:email:fail:{email}"
OTP_COOLDOWN_KEY_TEMPLATE = "otp:email:cooldown:{email}"

_RNG = random.SystemRandom()


def generate_otp() -> str:
    return f"{_RNG.randint(0, 999999):06d}"


def mask_email(email: str) -> str:
    return hashlib.sha256(email.lower().encode("utf-8")).hexdigest()[:12]


class OtpSender:
    async def send(self, email: str, code: str) -> None:
        raise NotImplementedError


class LoggingOtpSender(OtpSender):
    """Records that a code was issued without delivering it."""

    async def send(self, email: str, code: str) -> None:
        if settings.is_development:
            logger.info(f"Verification code issued: email={email}, code={code}")
        else:
            logger.info(f"Verification code issued: email_hash={mask_email(email)}")


otp_sender: OtpSender = LoggingOtpSender()


def get_otp_sender() -> OtpSender:
    return otp_sender


def _otp_key(email: str) -> str:
    return OTP_KEY_TEMPLATE.format(email=email.lower())


def _fail_key(email: str) -> str:
    return OTP_FAIL_KEY_TEMPLATE.format(email=email.lower())


def _cooldown_key(email: str) -> str:
    return OTP_COOLDOWN_KEY_TEMPLATE.format(email=email.lower())


async def issue_code(email: str, sender: OtpSender) -> None:
    """
    Store a fresh code for ``email`` and hand it to the sender. Any earlier
    code and failure count are discarded. Raises RateLimitError while the
    resend cooldown is running.
    """
    client = get_redis()
    try:
        if not await client.set(_cooldown_key(email), "1", ex=settings.OTP_RESEND_COOLDOWN_SECONDS, nx=True):
            raise RateLimitError("Please wait before requesting another code")
        code = generate_otp()
        await client.set(_otp_key(email), code, ex=settings.OTP_TTL_SECONDS)
        await client.delete(_fail_key(email))
    except RedisError as e:
        logger.error(f"Verification store unavailable: email_hash={mask_email(email)}, error={str(e)}")
        raise UnexpectedError("Verification service unavailable")
    await sender.send(email.lower(), code)


async def _increment_failures(email: str) -> int:
    client = get_redis()
    value = await client.incr(_fail_key(email))
    if value == 1:
        await client.expire(_fail_key(email), settings.OTP_TTL_SECONDS)
    return int(value)


async def verify_code(db: AsyncSession, email: str, code: str) -> User:
    """
    Check ``code`` against the pending one and mark the account verified.
    Too many wrong guesses discard the pending code.
    """
    user = await crud.get_user_by_email(db, email=email)
    if not user:
        raise ValidationError("Invalid or expired code")
    if user.is_verified:
        raise ValidationError("Account is already verified")

    client = get_redis()
    try:
        stored = await client.get(_otp_key(email))
        if isinstance(stored, bytes):
            stored = stored.decode("utf-8")
        if not stored:
            raise ValidationError("Invalid or expired code")
        if not secrets.compare_digest(stored, (code or "").strip()):
            failures = await _increment_failures(email)
            logger.warning(f"Verification failed: user_id={user.id}, failures={failures}")
            if failures >= settings.OTP_MAX_FAILURES:
                await client.delete(_otp_key(email))
                raise RateLimitError("Too many failed attempts, please request a new code")
            raise ValidationError("Invalid or expired code")
        await client.delete(_otp_key(email), _fail_key(email))
    except RedisError as e:
        logger.error(f"Verification store unavailable: user_id={user.id}, error={str(e)}")
        raise UnexpectedError("Verification service unavailable")

    user = await crud.update_user(db, user, is_verified=True)
    logger.info(f"Account verified: user_id={user.id}")
    return user


async def resend_code(db: AsyncSession, email: str, sender: OtpSender) -> None:
    """Issue a new code for an unverified account; unknown or verified emails are a no-op."""
    user = await crud.get_user_by_email(db, email=email)
    if not user or user.is_verified:
        logger.info(f"Verification resend skipped: email_hash={mask_email(email)}")
        return
    await issue_code(user.email, sender)
