"""Google OAuth token handling for calendar sync.

The authorization-code exchange lives with the settings UI; this module
only keeps an existing grant usable: refreshing access tokens and
encrypting the stored refresh token.
"""

import logging
from typing import Optional, Tuple

import aiohttp
from cryptography.fernet import Fernet, InvalidToken

from coachbook.core import config

logger = logging.getLogger(__name__)

TOKEN_URL = "https://oauth2.googleapis.com/token"

# Get encryption key from env (same as app secrets key)
ENCRYPTION_KEY = config.ENCRYPTION_KEY or Fernet.generate_key()
cipher_suite = Fernet(ENCRYPTION_KEY)


class GoogleAuthError(Exception):
    """Token refresh failed.

    ``revoked`` is set when Google says the grant itself is no longer
    valid, meaning the coach has to reconnect.
    """

    def __init__(self, message: str, revoked: bool = False):
        super().__init__(message)
        self.revoked = revoked


class GoogleCalendarOAuth:
    """Handle Google Calendar OAuth token refresh"""

    def __init__(self, timeout_seconds: Optional[float] = None):
        self.client_id = config.GOOGLE_CLIENT_ID
        self.client_secret = config.GOOGLE_CLIENT_SECRET
        self.timeout = aiohttp.ClientTimeout(
            total=timeout_seconds or config.CALENDAR_TIMEOUT_SECONDS
        )

        if not all([self.client_id, self.client_secret]):
            logger.warning("Google Calendar OAuth credentials not configured")

    async def refresh_access_token(self, refresh_token: str) -> Tuple[str, int]:
        """
        Use refresh token to get new access token

        Args:
            refresh_token: Decrypted refresh token from the coach's grant

        Returns:
            Tuple of (new_access_token, expires_in_seconds)
        """
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(
                TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            ) as resp:
                if resp.status != 200:
                    error_text = await resp.text()
                    logger.error(f"Token refresh failed: {resp.status} {error_text}")
                    revoked = resp.status in (400, 401) and "invalid_grant" in error_text
                    raise GoogleAuthError(f"Failed to refresh token: {resp.status}", revoked=revoked)

                data = await resp.json()
                access_token = data.get("access_token")
                expires_in = data.get("expires_in", 3600)

                if not access_token:
                    raise GoogleAuthError("No access token in response")

                logger.info("Successfully refreshed access token")
                return access_token, expires_in

    @staticmethod
    def encrypt_token(token: str) -> str:
        """Encrypt refresh token for storage"""
        return cipher_suite.encrypt(token.encode()).decode()

    @staticmethod
    def decrypt_token(encrypted_token: str) -> str:
        """Decrypt stored refresh token"""
        try:
            return cipher_suite.decrypt(encrypted_token.encode()).decode()
        except InvalidToken as e:
            raise GoogleAuthError("Stored refresh token cannot be decrypted", revoked=True) from e


# Singleton instance
google_oauth = GoogleCalendarOAuth()
