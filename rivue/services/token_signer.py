"""
Token signer — ES256 JWTs for the App Store Connect API.

Tokens are valid for 20 minutes. The signer caches the current token and
mints a new one once it is within 60 s of expiry, so a long paginated fetch
never sends an expired bearer.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import jwt

from rivue.services.credentials import AppleCredentials
from rivue.services.errors import CredentialError

logger = logging.getLogger(__name__)

TOKEN_TTL_SECONDS = 20 * 60
REFRESH_MARGIN_SECONDS = 60
AUDIENCE = "appstoreconnect-v1"


class AppleTokenSigner:
    """Mints and caches bearer tokens for one credential bundle."""

    def __init__(
        self,
        credentials: AppleCredentials,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._credentials = credentials
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at: float = 0.0

    @property
    def expires_at(self) -> float:
        return self._expires_at

    def token(self) -> str:
        """Return a valid token, signing a fresh one when the cached one is stale."""
        now = self._clock()
        if self._token is None or now >= self._expires_at - REFRESH_MARGIN_SECONDS:
            self._token = self._sign(now)
        return self._token

    def invalidate(self) -> None:
        """Drop the cached token (e.g. after the upstream answered 401)."""
        self._token = None
        self._expires_at = 0.0

    def _sign(self, now: float) -> str:
        creds = self._credentials
        expires_at = int(now) + TOKEN_TTL_SECONDS
        try:
            token = jwt.encode(
                {"iss": creds.issuer_id, "exp": expires_at, "aud": AUDIENCE},
                creds.private_key_pem,
                algorithm="ES256",
                headers={"kid": creds.key_id, "typ": "JWT"},
            )
        except (ValueError, TypeError, jwt.PyJWTError) as exc:
            logger.error("Failed to sign App Store Connect token: %s", exc)
            raise CredentialError("Failed to generate authentication token", source="api") from exc
        self._expires_at = float(expires_at)
        logger.debug("Signed App Store Connect token (kid=%s, exp=%d)", creds.key_id, expires_at)
        return token
