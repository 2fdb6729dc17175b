"""
OTP Service

Issues and checks one-time email codes.

Generation flow (``generate_otp``):
1. Look up the account by email
2. Claim one of the user's request slots for the current window
   (5 per 15 minutes by default); the claim is a single atomic
   increment-below-limit, so concurrent requests cannot over-admit
3. Issue a provisional ``otp_pending`` token for the user; it lives as long
   as the code and is only accepted by OTP verification
4. Store a fresh numeric code, replacing any pending one
5. Email the code, stating the same expiry the code cache enforces

Validation (``validate_otp``) removes the pending code whatever the outcome:
a wrong guess burns the code, and a correct one cannot be replayed.

Security considerations:
- Codes come from the ``secrets`` CSPRNG and are compared in constant time
- Codes and tokens are never logged
"""

import logging
import secrets
from collections.abc import Awaitable, Callable
from datetime import timedelta

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from daanbantayan.core.email import send_otp_email
from daanbantayan.core.exceptions import (
    OtpInvalidError,
    ServiceError,
    TooManyRequestsError,
    UserNotFoundError,
)
from daanbantayan.core.security import OTP_PENDING_TOKEN_TYPE, TokenSigner
from daanbantayan.modules.otp.store import OtpStore
from daanbantayan.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)

OtpMailer = Callable[[str, str, int], Awaitable[None]]


def generate_code(length: int = 6) -> str:
    """Return a zero-padded random numeric code of ``length`` digits."""
    return f"{secrets.randbelow(10**length):0{length}d}"


class OtpService:
    """One-time code issuance and validation backed by an ``OtpStore``."""

    def __init__(
        self,
        store: OtpStore,
        signer: TokenSigner,
        otp_length: int = 6,
        max_requests: int = 5,
        mailer: OtpMailer = send_otp_email,
    ):
        if store.codes.ttl_seconds % 60:
            raise ValueError("OTP code TTL must be a whole number of minutes")
        self.store = store
        self.signer = signer
        self.otp_length = otp_length
        self.max_requests = max_requests
        self.mailer = mailer

    @property
    def expires_in_minutes(self) -> int:
        """Code lifetime as stated in the email, equal to the cache TTL."""
        return self.store.codes.ttl_seconds // 60

    @property
    def pending_token_ttl(self) -> timedelta:
        """Lifetime of the provisional token, matching the code it stands for."""
        return timedelta(seconds=self.store.codes.ttl_seconds)

    async def generate_otp(self, db: AsyncSession, email: str) -> str:
        """
        Generate and email a one-time code for the account owning ``email``.

        Args:
            db: Database session
            email: Account email address (case-insensitive)

        Returns:
            Provisional ``otp_pending`` token for the account

        Raises:
            UserNotFoundError: No account has this email
            TooManyRequestsError: The request limit for the window is used up
            EmailDeliveryError: The code could not be emailed
        """
        try:
            user = await UserRepository.get_by_email(db, email)
            if user is None:
                raise UserNotFoundError("Invalid email.")

            user_id = str(user.id)
            count = await self.store.requests.increment_below(user_id, self.max_requests)
            if count is None:
                raise TooManyRequestsError(
                    "OTP request limit reached. Try again later.",
                    retry_after_seconds=self.store.requests.ttl_seconds,
                )

            token = self.signer.issue(
                user_id,
                user.role.value,
                self.pending_token_ttl,
                token_type=OTP_PENDING_TOKEN_TYPE,
            )

            code = generate_code(self.otp_length)
            await self.store.codes.put(user_id, code)
            await self.mailer(user.email, code, self.expires_in_minutes)

            logger.info(f"OTP sent to {user.email} (request {count}/{self.max_requests})")
            return token
        except ServiceError as e:
            logger.warning(f"OTP generation failed for {email}: {e.error_code}")
            raise
        except Exception as e:
            logger.error(f"Unexpected error generating OTP for {email}: {e}")
            raise

    async def validate_otp(self, user_id: str, code: str) -> None:
        """
        Check ``code`` against the pending code for ``user_id``.

        The pending code is taken out of the store in one step, so of two
        concurrent submissions at most one can see it.

        Raises:
            OtpInvalidError: No pending code, expired, or mismatch
        """
        expected = await self.store.codes.pop(user_id)

        if expected is None or not secrets.compare_digest(
            expected.encode("utf-8"), code.strip().encode("utf-8")
        ):
            logger.warning(f"Invalid OTP submitted for user {user_id}")
            raise OtpInvalidError()

        logger.info(f"OTP validated for user {user_id}")

    async def invalidate(self, user_id: str) -> None:
        """Drop any pending code for ``user_id``."""
        await self.store.codes.delete(user_id)
        logger.info(f"OTP invalidated for user {user_id}")


def get_otp_service(request: Request) -> OtpService:
    """FastAPI dependency returning the service built at startup."""
    return request.app.state.otp_service
