from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt


def decode_access_token(token: str, secret: str, algorithm: str = "HS256", audience: Optional[str] = None) -> dict:
    """
    Decode a bearer token issued by the managed auth provider.

    Raises:
        JWTError: If the signature, expiry or audience check fails
    """
    options = {} if audience else {"verify_aud": False}
    return jwt.decode(token, secret, algorithms=[algorithm], audience=audience, options=options)


def create_access_token(data: dict, secret: str, algorithm: str = "HS256", expires_delta: timedelta = None):
    """Mint a token shaped like the auth provider's (local development and tests)."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=60))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret, algorithm=algorithm)
