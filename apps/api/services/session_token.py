"""Session token helpers for anonymous accounts and third-party identities."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from config import settings
from services.identity import Subject, SubjectType


SESSION_TOKEN_TYPE = "confessions_session"


def create_session_token(
    account_id: str,
    username: Optional[str] = None,
    expires_hours: Optional[int] = None,
) -> Dict[str, Any]:
    """Create a signed session token for an anonymous account."""
    now = datetime.now(timezone.utc)
    ttl_hours = int(expires_hours or settings.JWT_EXPIRATION_HOURS or 24)
    expires_at = now + timedelta(hours=max(ttl_hours, 1))
    claims: Dict[str, Any] = {
        "sub": account_id,
        "type": SESSION_TOKEN_TYPE,
        "kind": SubjectType.ANONYMOUS.value,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    if username:
        claims["username"] = username

    token = jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return {
        "token": token,
        "expires_at": int(expires_at.timestamp()),
    }


def decode_session_token(token: str) -> Dict[str, Any]:
    """Decode and validate a locally issued session token."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        raise ValueError("Invalid or expired session token.") from exc

    token_type = str(payload.get("type", "")).strip()
    if token_type != SESSION_TOKEN_TYPE:
        raise ValueError("Invalid session token type.")

    subject = str(payload.get("sub", "")).strip()
    if not subject:
        raise ValueError("Session token missing subject.")

    return payload


def decode_provider_token(token: str) -> Dict[str, Any]:
    """Verify an identity token signed by the third-party identity provider."""
    options = {"verify_aud": bool(settings.IDENTITY_PROVIDER_AUDIENCE)}
    kwargs: Dict[str, Any] = {}
    if settings.IDENTITY_PROVIDER_AUDIENCE:
        kwargs["audience"] = settings.IDENTITY_PROVIDER_AUDIENCE
    if settings.IDENTITY_PROVIDER_ISSUER:
        kwargs["issuer"] = settings.IDENTITY_PROVIDER_ISSUER
    try:
        payload = jwt.decode(
            token,
            settings.IDENTITY_PROVIDER_SECRET,
            algorithms=[settings.IDENTITY_PROVIDER_ALGORITHM],
            options=options,
            **kwargs,
        )
    except JWTError as exc:
        raise ValueError("Invalid or expired identity token.") from exc

    subject = str(payload.get("sub", "")).strip()
    if not subject:
        raise ValueError("Identity token missing subject.")

    return payload


def resolve_token_subject(token: str) -> Dict[str, Any]:
    """Resolve a bearer token into a subject and optional email.

    Locally issued session tokens are tried first; anything else must verify
    against the identity provider.
    """
    try:
        payload = decode_session_token(token)
    except ValueError:
        payload = None

    if payload is not None:
        return {
            "subject": Subject(kind=SubjectType.ANONYMOUS, id=str(payload["sub"]).strip()),
            "email": None,
            "username": payload.get("username"),
        }

    payload = decode_provider_token(token)
    email = str(payload.get("email", "") or "").strip() or None
    return {
        "subject": Subject(kind=SubjectType.THIRD_PARTY, id=str(payload["sub"]).strip()),
        "email": email,
        "username": None,
    }
