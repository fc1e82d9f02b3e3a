"""Access token verification.

LearnHub does not issue tokens. The identity service signs them with the
shared key; here only the signature, the expiry, the token type and the
presence of the claims every service operation needs are checked.
"""

from typing import Any

from jose import JWTError, jwt

from learnhub.config.settings import Settings, get_settings


ACCESS_TOKEN_TYPE = "access"
REQUIRED_CLAIMS = ("sub", "role")


def decode_access_token(token: str, settings: Settings | None = None) -> dict[str, Any]:
    """Verify an access token and return its claims.

    Raises:
        JWTError: Bad signature, expired, not an access token, or missing
            the subject or role claim
    """
    settings = settings or get_settings()
    claims = jwt.decode(token, settings.auth_secret_key, algorithms=[settings.auth_algorithm])

    if claims.get("type") != ACCESS_TOKEN_TYPE:
        raise JWTError(f"Invalid token type: expected '{ACCESS_TOKEN_TYPE}'")

    missing = [name for name in REQUIRED_CLAIMS if name not in claims]
    if missing:
        raise JWTError(f"Access token missing claims: {', '.join(missing)}")

    return claims
