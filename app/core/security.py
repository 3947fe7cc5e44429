from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from jose import ExpiredSignatureError, JWTError, jwt

from app.core.config import settings


def create_access_token(subject: str) -> str:
    # Tokens are normally minted by the identity provider; this is for local and test use.
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=settings.access_token_expire_minutes)

    payload = {
        "sub": subject,                  # user id
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> tuple[uuid.UUID | None, str | None]:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError:
        return None, "expired"
    except JWTError:
        return None, "invalid"

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        return None, "invalid"

    try:
        return uuid.UUID(subject), None
    except ValueError:
        return None, "invalid"
