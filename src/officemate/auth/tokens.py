"""JWT encoding and decoding (python-jose).

HS256 with the shared secret by default; RS256 when both PEM keys are
configured.
"""

import logging
import time
import uuid
from typing import Any, Optional

from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from officemate.config import Settings, get_settings
from officemate.errors import AuthenticationError

logger = logging.getLogger(__name__)

TOKEN_TYPE_ACCESS = "ACCESS"
TOKEN_TYPE_REFRESH = "REFRESH"


class TokenCodec:
    """Signs and verifies bearer tokens."""

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.issuer = settings.jwt_issuer
        if settings.jwt_uses_rsa:
            self.algorithm = "RS256"
            self._signing_key = settings.jwt_private_key
            self._verify_key = settings.jwt_public_key
        else:
            self.algorithm = "HS256"
            self._signing_key = settings.jwt_secret_key
            self._verify_key = settings.jwt_secret_key

    def encode(self, subject: str, claims: dict[str, Any], ttl_seconds: int) -> tuple[str, str, int]:
        """Create a signed token.

        Returns:
            Tuple of (token, jti, exp as unix seconds)
        """
        now = int(time.time())
        jti = str(uuid.uuid4())
        payload = dict(claims)
        payload.update(
            {
                "sub": subject,
                "iss": self.issuer,
                "iat": now,
                "exp": now + ttl_seconds,
                "jti": jti,
            }
        )
        token = jwt.encode(payload, self._signing_key, algorithm=self.algorithm)
        return token, jti, payload["exp"]

    def decode(self, token: str) -> dict[str, Any]:
        """Verify signature, issuer and expiry and return the claims.

        Raises:
            AuthenticationError: If the token is expired, forged or malformed
        """
        try:
            # Structure first, so a bad signature is told apart from garbage
            jwt.get_unverified_header(token)
            jwt.get_unverified_claims(token)
        except JWTError as e:
            logger.debug(f"Token not parseable: {e}")
            raise AuthenticationError("Malformed token", "INVALID_TOKEN")

        try:
            return jwt.decode(
                token,
                self._verify_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
            )
        except ExpiredSignatureError:
            raise AuthenticationError("Token has expired", "TOKEN_EXPIRED")
        except JWTClaimsError as e:
            logger.debug(f"Token claims rejected: {e}")
            raise AuthenticationError("Invalid token claims", "INVALID_TOKEN")
        except JWTError as e:
            logger.debug(f"Token rejected: {e}")
            raise AuthenticationError("Invalid token signature", "INVALID_TOKEN")

    def remaining_lifetime(self, claims: dict[str, Any]) -> int:
        """Seconds until the token expires (never negative)."""
        return max(int(claims.get("exp", 0)) - int(time.time()), 0)
