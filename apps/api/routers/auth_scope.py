"""Authentication dependencies resolving the request subject once per request."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import is_admin_email
from services.errors import Forbidden, Unauthorized, ValidationError
from services.identity import Subject, parse_subject_type
from services.session_token import resolve_token_subject


auth_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthContext:
    subject: Subject
    email: Optional[str] = None
    username: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return is_admin_email(self.email)


def ensure_subject_scope(
    auth: AuthContext,
    supplied_subject_id: Optional[str],
    supplied_subject_type: Optional[str] = None,
) -> Subject:
    """Return the authenticated subject and reject cross-account attempts."""
    if supplied_subject_type:
        try:
            kind = parse_subject_type(supplied_subject_type)
        except ValueError:
            raise ValidationError("Invalid subject type") from None
        if kind is not auth.subject.kind:
            raise Forbidden("subjectType does not match authenticated session.")
    if supplied_subject_id and supplied_subject_id != auth.subject.id:
        raise Forbidden("subjectId does not match authenticated session.")
    return auth.subject


def subject_from_payload(subject_type: Optional[str], subject_id: Optional[str]) -> Subject:
    """Build a subject named in an admin request body or query."""
    if not subject_type or not subject_id or not str(subject_id).strip():
        raise ValidationError("Missing fields")
    try:
        kind = parse_subject_type(subject_type)
    except ValueError:
        raise ValidationError("Invalid subject type") from None
    return Subject(kind=kind, id=str(subject_id).strip())


async def get_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> AuthContext:
    """Resolve the authenticated subject from a Bearer token."""
    if not credentials or credentials.scheme.lower() != "bearer":
        raise Unauthorized("Authentication required")

    try:
        resolved = resolve_token_subject(credentials.credentials)
    except ValueError as exc:
        raise Unauthorized(str(exc)) from exc

    return AuthContext(
        subject=resolved["subject"],
        email=resolved.get("email"),
        username=resolved.get("username"),
    )


async def require_admin(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    """Allow only third-party identities whose email is on the admin allow-list."""
    if auth.subject.is_anonymous or not auth.is_admin:
        raise Forbidden("Forbidden")
    return auth
