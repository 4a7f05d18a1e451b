"""
Cloudflare Turnstile token verification for skill-question submissions.
Verification is skipped when no secret key is configured (development).
"""

from dataclasses import dataclass
from typing import Optional

import httpx

from prize_reservations.core.logging import get_logger

logger = get_logger(__name__)

TURNSTILE_VERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"
FAILED_MESSAGE = "Captcha verification failed. Please try again."


@dataclass(frozen=True)
class CaptchaResult:
    success: bool
    error: Optional[str] = None


class TurnstileVerifier:

    def __init__(self, secret_key: str, verify_url: str = TURNSTILE_VERIFY_URL, timeout: float = 5.0):
        self.secret_key = secret_key
        self.verify_url = verify_url
        self.timeout = timeout

    async def verify(self, token: Optional[str], ip: Optional[str] = None) -> CaptchaResult:
        if not self.secret_key:
            logger.warning("captcha_not_configured", message="Skipping captcha verification")
            return CaptchaResult(success=True)

        if not token:
            return CaptchaResult(success=False, error="Captcha verification required")

        form = {"secret": self.secret_key, "response": token}
        if ip:
            form["remoteip"] = ip

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.verify_url, data=form)
        except httpx.HTTPError as e:
            logger.error("captcha_request_failed", error=str(e))
            return CaptchaResult(success=False, error=FAILED_MESSAGE)

        if response.status_code != 200:
            logger.error("captcha_api_error", status_code=response.status_code)
            return CaptchaResult(success=False, error=FAILED_MESSAGE)

        data = response.json()
        if data.get("success"):
            return CaptchaResult(success=True)

        logger.warning("captcha_rejected", error_codes=data.get("error-codes", []))
        return CaptchaResult(success=False, error=FAILED_MESSAGE)
