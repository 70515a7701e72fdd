"""HS256 tokens for authenticating against PostgREST."""

import time
from datetime import timedelta
from typing import Any, Optional

import jwt

from pgfleet.core.exceptions import TokenError


DEFAULT_ISSUER = "postgres-config"
HEALTH_CHECK_AUDIENCE = "postgrest-health-check"
HEALTH_CHECK_LIFETIME = timedelta(minutes=5)
ALGORITHM = "HS256"


class JWTGenerator:
    """Mints and reads tokens signed with a shared secret."""

    def __init__(
        self,
        secret: Optional[str],
        issuer: str = DEFAULT_ISSUER,
        audience: str = "",
    ) -> None:
        self._secret = secret or ""
        self.issuer = issuer
        self.audience = audience

    def __repr__(self) -> str:
        return f"JWTGenerator(issuer={self.issuer!r}, audience={self.audience!r})"

    def _require_secret(self) -> str:
        if not self._secret:
            raise TokenError(
                "JWT secret is not configured",
                hint="Set the JWT_SECRET environment variable",
            )
        return self._secret

    def generate_token(
        self,
        role: str,
        expiry: timedelta,
        claims: Optional[dict[str, Any]] = None,
    ) -> str:
        """Sign a token for role that expires after expiry.

        Extra claims override the standard ones.

        Raises:
            TokenError: If no secret is configured
        """
        secret = self._require_secret()
        now = int(time.time())
        payload: dict[str, Any] = {
            "iat": now,
            "exp": now + int(expiry.total_seconds()),
            "role": role,
        }
        if self.issuer:
            payload["iss"] = self.issuer
        if self.audience:
            payload["aud"] = self.audience
        payload.update(claims or {})
        return jwt.encode(payload, secret, algorithm=ALGORITHM)

    def generate_health_check_token(self, admin_role: str) -> str:
        return self.generate_token(
            admin_role,
            HEALTH_CHECK_LIFETIME,
            {"purpose": "health-check", "aud": HEALTH_CHECK_AUDIENCE},
        )

    def generate_service_token(self, role: str, service: str, expiry: timedelta) -> str:
        return self.generate_token(role, expiry, {"service": service, "type": "service-token"})

    def _decode(self, token: str, verify_exp: bool = True) -> dict[str, Any]:
        secret = self._require_secret()
        try:
            return jwt.decode(
                token,
                secret,
                algorithms=[ALGORITHM],
                options={"verify_aud": False, "verify_exp": verify_exp},
            )
        except jwt.PyJWTError as e:
            raise TokenError("Invalid token", details=[str(e)]) from e

    def validate(self, token: str) -> bool:
        """True if token has a valid signature and has not expired.

        Raises:
            TokenError: If no secret is configured
        """
        self._require_secret()
        try:
            self._decode(token)
        except TokenError:
            return False
        return True

    def get_claims(self, token: str) -> dict[str, Any]:
        """Raises TokenError for invalid or expired tokens."""
        return self._decode(token)

    def get_role(self, token: str) -> str:
        role = self.get_claims(token).get("role")
        if not isinstance(role, str):
            raise TokenError("role claim not found or not a string")
        return role

    def remaining_time(self, token: str) -> timedelta:
        """Time until expiry, zero once expired."""
        exp = self._decode(token, verify_exp=False).get("exp")
        if not isinstance(exp, (int, float)):
            raise TokenError("exp claim not found or not a number")
        return timedelta(seconds=max(exp - time.time(), 0))

    def is_expired(self, token: str) -> bool:
        return self.remaining_time(token) == timedelta(0)
