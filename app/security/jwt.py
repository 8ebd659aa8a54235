"""
HS256 bearer tokens for live operators.

Tokens are issued by the identity service; this service only verifies them
and reads the ``role`` claim to decide whether the bearer may drive live
controls. ``create_access_token`` is kept for tooling and tests.
"""
from datetime import datetime, timedelta, timezone
import base64
import hashlib
import hmac
import json

from app.config import get_settings

ALGORITHM = "HS256"
TOKEN_TYPE = "access"
REQUIRED_CLAIMS = ("sub", "role")


class AccessTokenError(ValueError):
    pass


def _encode_segment(value: dict | bytes) -> str:
    if isinstance(value, dict):
        value = json.dumps(value, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return base64.urlsafe_b64encode(value).rstrip(b"=").decode("utf-8")


def _decode_segment(segment: str) -> dict:
    padding = "=" * (-len(segment) % 4)
    try:
        decoded = json.loads(base64.urlsafe_b64decode((segment + padding).encode("utf-8")))
    except ValueError as exc:
        raise AccessTokenError("Malformed token") from exc
    if not isinstance(decoded, dict):
        raise AccessTokenError("Malformed token")
    return decoded


def _signature(signing_input: str) -> str:
    digest = hmac.new(
        get_settings().operator_jwt_secret.encode("utf-8"),
        signing_input.encode("utf-8"),
        hashlib.sha256,
    ).digest()
    return _encode_segment(digest)


def create_access_token(*, subject: str, role: str, ttl_minutes: int | None = None) -> str:
    if ttl_minutes is None:
        ttl_minutes = get_settings().operator_access_ttl_minutes
    issued = datetime.now(timezone.utc)
    claims = {
        "sub": str(subject),
        "role": role,
        "typ": TOKEN_TYPE,
        "iat": int(issued.timestamp()),
        "exp": int((issued + timedelta(minutes=ttl_minutes)).timestamp()),
    }
    signing_input = f"{_encode_segment({'alg': ALGORITHM, 'typ': 'JWT'})}.{_encode_segment(claims)}"
    return f"{signing_input}.{_signature(signing_input)}"


def decode_access_token(token: str) -> dict:
    """Verify signature, algorithm, expiry and required claims; return the claims."""
    parts = token.split(".")
    if len(parts) != 3:
        raise AccessTokenError("Invalid access token")
    header_segment, claims_segment, signature = parts

    if not hmac.compare_digest(signature, _signature(f"{header_segment}.{claims_segment}")):
        raise AccessTokenError("Invalid access token signature")

    if _decode_segment(header_segment).get("alg") != ALGORITHM:
        raise AccessTokenError("Unexpected token algorithm")

    claims = _decode_segment(claims_segment)
    exp = claims.get("exp")
    if not isinstance(exp, int):
        raise AccessTokenError("Token exp claim is missing")
    if datetime.now(timezone.utc).timestamp() >= exp:
        raise AccessTokenError("Access token has expired")
    if claims.get("typ") != TOKEN_TYPE:
        raise AccessTokenError("Invalid token type")
    if any(not claims.get(name) for name in REQUIRED_CLAIMS):
        raise AccessTokenError("Token payload is incomplete")

    return claims


def is_operator(claims: dict) -> bool:
    return claims.get("role") in get_settings().operator_roles
