"""
Token verification for user bearer tokens.

Tokens are HS256 JWTs issued by the auth provider; the subject claim is the
user ID used throughout the database.
"""

import jwt
from structlog import get_logger

from flikkt.exceptions import AuthenticationError
from flikkt.models.domain import UserIdentity

logger = get_logger(__name__)


def extract_bearer_token(authorization: str | None) -> str:
    """Pull the token out of an Authorization header value."""
    if not authorization:
        raise AuthenticationError("Authorization header required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Authorization header must be 'Bearer <token>'")
    return token.strip()


class TokenVerifier:
    """Verifies user JWTs locally; no network call."""

    def __init__(self, secret: str, audience: str = "authenticated") -> None:
        self.secret = secret
        self.audience = audience

    def verify(self, token: str) -> UserIdentity:
        """
        Verify signature, expiry and audience.

        Raises:
            AuthenticationError: Token cannot be trusted
        """
        if not self.secret:
            raise AuthenticationError("Token verification is not configured")

        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=["HS256"],
                audience=self.audience,
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            logger.warning("token_verification_failed", error=str(exc))
            raise AuthenticationError("Invalid token") from exc

        user_id = claims.get("sub")
        if not user_id:
            raise AuthenticationError("Invalid token: missing user ID")

        return UserIdentity(user_id=str(user_id), email=claims.get("email"))

    def verify_header(self, authorization: str | None) -> UserIdentity:
        return self.verify(extract_bearer_token(authorization))
