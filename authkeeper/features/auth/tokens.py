"""JWT access/refresh token codec."""

import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from authkeeper.config.settings import Settings, settings

from .exceptions import TokenExpiredError, TokenMalformedError

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


class TokenCodec:
    """Signs and verifies compact, expiring, tamper-evident tokens.

    Access and refresh tokens use independent secrets and TTLs. The codec is
    pure computation: no I/O, no global state beyond the settings it was
    constructed with.
    """

    def __init__(self, config: Settings):
        self._algorithm = config.jwt_algorithm
        self._issuer = config.jwt_issuer
        self._audience = config.jwt_audience
        self._access_secret = config.jwt_secret_key
        self._refresh_secret = config.jwt_refresh_secret_key
        self.access_ttl = timedelta(minutes=config.access_token_expire_minutes)
        self.refresh_ttl = timedelta(days=config.refresh_token_expire_days)

    def sign(self, claims: dict[str, Any], secret: str, ttl: timedelta) -> str:
        """Sign ``claims`` with registered claims (iat, exp, iss, aud, jti) added."""
        now = datetime.now(UTC)
        to_encode = claims.copy()
        to_encode.update(
            {
                "iat": now,
                "exp": now + ttl,
                "iss": self._issuer,
                "aud": self._audience,
                "jti": secrets.token_hex(16),
            }
        )
        return jwt.encode(to_encode, secret, algorithm=self._algorithm)

    def verify(self, token: str, secret: str, expected_type: str | None = None) -> dict[str, Any]:
        """Verify signature, expiry, issuer and audience.

        Raises:
            TokenExpiredError: If the signature is valid but ``exp`` has passed
            TokenMalformedError: For any other verification failure

        """
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self._algorithm],
                audience=self._audience,
                issuer=self._issuer,
                options={"require": ["exp", "iat", "sub", "type"]},
            )
        except ExpiredSignatureError as err:
            raise TokenExpiredError("Token has expired") from err
        except InvalidTokenError as err:
            raise TokenMalformedError(str(err)) from err

        if expected_type is not None and payload.get("type") != expected_type:
            raise TokenMalformedError(f"Invalid token type, expected {expected_type}")

        return payload

    def issue_access_token(self, user_id: int, username: str, session_id: str, permissions: list[str]) -> str:
        claims = {
            "sub": str(user_id),
            "username": username,
            "sid": session_id,
            "permissions": list(permissions),
            "type": ACCESS_TOKEN_TYPE,
        }
        return self.sign(claims, self._access_secret, self.access_ttl)

    def issue_refresh_token(self, user_id: int, username: str, session_id: str) -> str:
        claims = {
            "sub": str(user_id),
            "username": username,
            "sid": session_id,
            "type": REFRESH_TOKEN_TYPE,
        }
        return self.sign(claims, self._refresh_secret, self.refresh_ttl)

    def verify_access_token(self, token: str) -> dict[str, Any]:
        return self.verify(token, self._access_secret, ACCESS_TOKEN_TYPE)

    def verify_refresh_token(self, token: str) -> dict[str, Any]:
        return self.verify(token, self._refresh_secret, REFRESH_TOKEN_TYPE)

    @property
    def access_expires_in(self) -> int:
        """Advertised ``expiresIn`` in seconds; always equal to the signed TTL."""
        return int(self.access_ttl.total_seconds())


token_codec = TokenCodec(settings)
