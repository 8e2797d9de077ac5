"""Bearer-token dependencies for admin-only routes."""

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import settings
from services.session_token import SessionClaims, decode_session_token


auth_scheme = HTTPBearer(auto_error=False)


def is_admin_email(email: str) -> bool:
    allowed = {value.strip().lower() for value in settings.ADMIN_EMAILS if value and value.strip()}
    return bool(email) and email.strip().lower() in allowed


async def get_session_claims(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> SessionClaims:
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Missing Bearer session token.")
    try:
        return decode_session_token(credentials.credentials)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


async def require_admin(claims: SessionClaims = Depends(get_session_claims)) -> SessionClaims:
    """Only sessions whose email is listed in ADMIN_EMAILS may proceed."""
    if not claims.email or not is_admin_email(claims.email):
        raise HTTPException(status_code=403, detail="Admin access required.")
    return claims
