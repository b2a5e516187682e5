"""
Bearer token issuing and verification for the Auth service.
"""

import math
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union

import jwt

from shared.logging import get_logger
from ..errors import TokenInvalidError
from ..models import TokenClaims

ALGORITHM = "HS256"
DEFAULT_TOKEN_TTL = timedelta(hours=24)


class TokenIssuer:
    """Signs and verifies stateless HS256 identity tokens.

    A token carries the subject id, role and an absolute expiry. There is no
    server-side record: a token is valid exactly when its signature matches
    the shared secret and the clock is before ``exp``, which is rounded up to
    the next whole second. No revocation, no replay protection, no key
    rotation.
    """

    def __init__(
        self,
        secret: str,
        ttl: timedelta = DEFAULT_TOKEN_TTL,
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise ValueError("token signing secret must not be empty")
        self._secret = secret
        self.ttl = ttl
        self._clock = clock
        self.logger = get_logger("auth.tokens")

    def issue(self, subject: int, role: str, ttl: Optional[Union[timedelta, float]] = None) -> str:
        """Issue a signed token for ``subject`` valid for ``ttl``."""
        lifetime = self._seconds(ttl if ttl is not None else self.ttl)
        now = self._clock()
        claims = {
            "sub": str(subject),
            "role": role,
            "iat": int(now),
            "exp": math.ceil(now + lifetime),
        }
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM)

    def verify(self, token: str) -> TokenClaims:
        """Verify signature and expiry and return the token's claims.

        Raises:
            TokenInvalidError: if the token is malformed, the signature does
                not match, or the current time is at or past expiry.
        """
        if not token:
            raise TokenInvalidError("missing token")

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={
                    "require": ["sub", "role", "exp"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidTokenError as e:
            self.logger.debug("Token rejected", reason=type(e).__name__)
            raise TokenInvalidError(type(e).__name__) from None

        exp = payload["exp"]
        if not isinstance(exp, (int, float)) or isinstance(exp, bool):
            raise TokenInvalidError("malformed expiry")
        if self._clock() >= exp:
            raise TokenInvalidError("expired")

        try:
            subject = int(payload["sub"])
        except (TypeError, ValueError):
            raise TokenInvalidError("malformed subject") from None

        return TokenClaims(
            subject=subject,
            role=str(payload["role"]),
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
        )

    @staticmethod
    def _seconds(ttl: Union[timedelta, float]) -> float:
        if isinstance(ttl, timedelta):
            return ttl.total_seconds()
        return float(ttl)
