"""JWT issue/verify for investor and operator sessions.

HS256 with a single JWT_SECRET. Access tokens carry the role as a hint for
clients; the admin check itself always re-reads the role from the users
table. Refresh tokens are not rotated and there is no revocation list.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from config.settings import settings
from src.bp_common.errors import InvalidCredentialsError, InvalidRefreshTokenError

ACCESS = "access"
REFRESH = "refresh"

_ALGORITHM = settings.JWT_ALGORITHM
_ACCESS_EXPIRE = timedelta(minutes=settings.JWT_EXPIRE_MINUTES)
_REFRESH_EXPIRE = timedelta(days=settings.JWT_REFRESH_EXPIRE_DAYS)


@dataclass(frozen=True)
class TokenClaims:
    subject: str
    token_type: str
    expires_at: datetime
    role: str | None = None


def _issue(subject: str, token_type: str, lifetime: timedelta, role: str | None) -> str:
    issued_at = datetime.now(UTC)
    claims: dict[str, object] = {
        "sub": subject,
        "type": token_type,
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    if role is not None:
        claims["role"] = role
    return str(jwt.encode(claims, settings.JWT_SECRET, algorithm=_ALGORITHM))


def create_access_token(user_id: str, role: str | None = None) -> str:
    return _issue(user_id, ACCESS, _ACCESS_EXPIRE, role)


def create_refresh_token(user_id: str) -> str:
    return _issue(user_id, REFRESH, _REFRESH_EXPIRE, None)


def _rejected(expected_type: str) -> Exception:
    if expected_type == ACCESS:
        return InvalidCredentialsError()
    return InvalidRefreshTokenError()


def decode_token(token: str, expected_type: str) -> TokenClaims:
    """Verify signature, expiry and token type.

    A refresh token presented as an access token (or the reverse) is rejected
    like a forged one. Failures raise InvalidCredentialsError for access
    tokens and InvalidRefreshTokenError for refresh tokens.
    """
    try:
        # Explicit algorithm list: never trust the header's "alg"
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[_ALGORITHM])
    except JWTError:
        raise _rejected(expected_type) from None

    subject = payload.get("sub")
    if payload.get("type") != expected_type or not subject:
        raise _rejected(expected_type)
    return TokenClaims(
        subject=str(subject),
        token_type=expected_type,
        expires_at=datetime.fromtimestamp(payload["exp"], UTC),
        role=payload.get("role"),
    )
