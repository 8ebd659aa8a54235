from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.database import get_db
from app.security.jwt import AccessTokenError, decode_access_token, is_operator

bearer_scheme = HTTPBearer(auto_error=False)

__all__ = ["get_db", "require_operator"]


def _unauthorized(detail: str = "Unauthorized") -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


async def require_operator(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict:
    """Gate for mutating live controls. Returns the verified token payload."""
    if not credentials or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Missing bearer token")

    try:
        payload = decode_access_token(credentials.credentials)
    except AccessTokenError:
        raise _unauthorized("Invalid access token")

    if not is_operator(payload):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")

    return payload
