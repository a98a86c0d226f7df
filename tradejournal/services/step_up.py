"""Step-up verification for sensitive actions.

Users who enrolled a TOTP authenticator must enter a current code before a
sensitive action (sign-out, deletes, archive, edits) runs. Users who never
enrolled are not prompted at all.

Only one action can wait for a code at a time. A wrong code keeps it waiting
so the user can retry; cancel() drops it.
"""

import logging
from collections.abc import Awaitable, Callable
from enum import Enum

import pyotp
from pydantic import ValidationError

from tradejournal.config import settings
from tradejournal.models.security import TotpEnrollment
from tradejournal.services.store.base import TOTP, RecordStore, store_path

logger = logging.getLogger(__name__)

GatedAction = Callable[[], Awaitable[object]]


class StepUpOutcome(str, Enum):
    EXECUTED = "executed"
    VERIFICATION_REQUIRED = "verification_required"


class TotpVerifier:
    """RFC 6238 codes: SHA1, 6 digits, 30 s period, one step of clock drift."""

    def __init__(
        self,
        digits: int | None = None,
        interval: int | None = None,
        valid_window: int | None = None,
    ) -> None:
        self.digits = digits or settings.totp_digits
        self.interval = interval or settings.totp_period_seconds
        self.valid_window = settings.totp_valid_window if valid_window is None else valid_window

    def totp(self, secret: str) -> pyotp.TOTP:
        return pyotp.TOTP(secret, digits=self.digits, interval=self.interval)

    def verify(self, code: str, secret: str) -> bool:
        code = (code or "").strip().replace(" ", "")
        if not code.isdigit() or len(code) != self.digits:
            return False
        try:
            return self.totp(secret).verify(code, valid_window=self.valid_window)
        except Exception as e:
            logger.warning("TOTP verification error: %s", e)
            return False


class StepUpGuard:
    """Runs sensitive actions, asking for a TOTP code first when enrolled."""

    def __init__(
        self,
        store: RecordStore,
        user_id: str,
        verifier: TotpVerifier | None = None,
    ) -> None:
        self._store = store
        self.user_id = user_id
        self.verifier = verifier or TotpVerifier()
        self._pending: GatedAction | None = None

    @property
    def _path(self) -> str:
        return store_path(self.user_id, TOTP)

    @property
    def pending(self) -> bool:
        """True while an action is waiting for a code."""
        return self._pending is not None

    async def _enrollment(self) -> TotpEnrollment | None:
        """Load the stored enrollment. Store read errors propagate."""
        raw = await self._store.read(self._path)
        if not isinstance(raw, dict):
            return None
        try:
            return TotpEnrollment.model_validate(raw)
        except ValidationError:
            logger.warning("Ignoring malformed TOTP enrollment for %s", self.user_id)
            return None

    async def is_enrolled(self) -> bool:
        try:
            enrollment = await self._enrollment()
        except Exception as e:
            logger.error("Failed to read TOTP enrollment for %s: %s", self.user_id, e)
            return False
        return enrollment is not None and enrollment.enabled is True

    async def run_with_optional_step_up(self, action: GatedAction) -> StepUpOutcome:
        """Run ``action`` now, or park it until a valid code is submitted."""
        if not await self.is_enrolled():
            await action()
            return StepUpOutcome.EXECUTED
        if self._pending is not None:
            logger.info("Replacing action already waiting for verification")
        self._pending = action
        return StepUpOutcome.VERIFICATION_REQUIRED

    async def submit_code(self, code: str) -> bool:
        """Check a code against the enrolled secret and run the waiting action.

        A stored record is checked whether or not it is still enabled. If the
        record was removed meanwhile, the action runs.

        Returns:
            True if the action ran. False on a wrong code or when the
            enrollment could not be read, in which case the action stays
            pending.
        """
        action = self._pending
        if action is None:
            return False

        try:
            enrollment = await self._enrollment()
        except Exception as e:
            logger.error("Failed to read TOTP enrollment for %s: %s", self.user_id, e)
            return False

        if enrollment is None:
            self._pending = None
            await action()
            return True

        if not self.verifier.verify(code, enrollment.secret):
            logger.info("Step-up verification failed for %s", self.user_id)
            return False

        self._pending = None
        await action()
        return True

    def cancel(self) -> None:
        self._pending = None

    # ─── Enrollment ─────────────────────────────────────────────

    def begin_enrollment(self, account_name: str) -> tuple[str, str]:
        """Generate a secret and its otpauth:// URI for the authenticator app."""
        secret = pyotp.random_base32()
        uri = self.verifier.totp(secret).provisioning_uri(
            name=account_name, issuer_name=settings.totp_issuer
        )
        return secret, uri

    async def confirm_enrollment(self, secret: str, code: str) -> bool:
        """Store the enrollment if ``code`` proves the app has the secret."""
        if not self.verifier.verify(code, secret):
            return False
        enrollment = TotpEnrollment(secret=secret, enabled=True)
        await self._store.set(self._path, enrollment.to_document())
        logger.info("TOTP enrolled for %s", self.user_id)
        return True

    async def unenroll(self) -> StepUpOutcome:
        """Remove the enrollment. Requires a code like any other sensitive action."""

        async def remove() -> None:
            await self._store.delete(self._path)
            logger.info("TOTP removed for %s", self.user_id)

        return await self.run_with_optional_step_up(remove)
