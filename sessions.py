"""
Stateless admin sessions carried in the httpOnly ``auth-token`` cookie.

The credential is a signed JWT. There is no server-side session table:
logging out only tells the browser to drop the cookie, and rotating
JWT_SECRET invalidates every outstanding credential.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from jose import JWTError, jwt

logger = logging.getLogger(__name__)

COOKIE_NAME = "auth-token"
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
ADMIN_ROLE = "admin"


class SignatureInvalid(Exception):
    pass


class TokenSigner(Protocol):
    def sign(self, claims: Dict[str, Any]) -> str:
        ...

    def verify(self, token: str) -> Dict[str, Any]:
        ...


class JoseSigner:
    """HMAC JWT signing. Expiry is checked by SessionManager against its own clock."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self.secret = secret
        self.algorithm = algorithm

    def sign(self, claims: Dict[str, Any]) -> str:
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"verify_exp": False, "verify_iat": False},
            )
        except JWTError as exc:
            raise SignatureInvalid(str(exc)) from exc


@dataclass(frozen=True)
class SessionCredential:
    subject: str
    issued_at: datetime
    expires_at: datetime
    token: str


@dataclass(frozen=True)
class CookieDirective:
    value: str
    max_age: int
    secure: bool
    expires: Optional[datetime] = None
    key: str = COOKIE_NAME
    httponly: bool = True
    samesite: str = "strict"
    path: str = "/"

    def apply(self, response) -> None:
        response.set_cookie(
            key=self.key,
            value=self.value,
            max_age=self.max_age,
            expires=self.expires,
            path=self.path,
            secure=self.secure,
            httponly=self.httponly,
            samesite=self.samesite,
        )


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    def __init__(
        self,
        signer: TokenSigner,
        ttl: timedelta = timedelta(hours=12),
        secure: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.signer = signer
        self.ttl = ttl
        self.secure = secure
        self.clock = clock

    def issue(self, subject: str) -> Tuple[SessionCredential, CookieDirective]:
        # exp is whole seconds, so expires_at must be too
        issued_at = self.clock().replace(microsecond=0)
        expires_at = issued_at + self.ttl
        token = self.signer.sign(
            {
                "sub": subject,
                "role": ADMIN_ROLE,
                "iat": int(issued_at.timestamp()),
                "exp": int(expires_at.timestamp()),
            }
        )
        credential = SessionCredential(subject, issued_at, expires_at, token)
        cookie = CookieDirective(
            value=token,
            max_age=int(self.ttl.total_seconds()),
            secure=self.secure,
        )
        return credential, cookie

    def validate(self, token: Optional[str]) -> Optional[str]:
        """Return the subject for a live credential, None for anything else.

        Callers must not distinguish between the reasons; the log line is the
        only place they are recorded.
        """
        if not token:
            return None
        try:
            claims = self.signer.verify(token)
        except SignatureInvalid:
            logger.info("session rejected: bad signature or malformed token")
            return None

        subject = claims.get("sub")
        expires = claims.get("exp")
        if not isinstance(subject, str) or not isinstance(expires, (int, float)):
            logger.info("session rejected: missing claims")
            return None
        if claims.get("role") != ADMIN_ROLE:
            logger.info("session rejected: role")
            return None
        if self.clock().timestamp() >= expires:
            logger.info("session rejected: expired")
            return None
        return subject

    def revoke(self) -> CookieDirective:
        # Clients may honor either Max-Age or Expires, so set both
        return CookieDirective(value="", max_age=0, expires=EPOCH, secure=self.secure)
