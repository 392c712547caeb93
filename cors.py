"""
Origin policy for the admin dashboard and public site.

OriginPolicy.decide() is a pure function of the request's Origin, method and
requested headers plus the static allow-list. OriginPolicyMiddleware applies
the decision to every /api/* request: preflights are answered directly,
everything else gets the headers merged onto the handler's response.
"""

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger(__name__)

ALLOWED_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"})
DEFAULT_ALLOWED_HEADERS = frozenset({"Content-Type", "Authorization"})
PREFLIGHT_MAX_AGE = 86400


@dataclass(frozen=True)
class OriginDecision:
    allowed_origin: Optional[str]
    allowed_methods: FrozenSet[str] = ALLOWED_METHODS
    allowed_headers: FrozenSet[str] = DEFAULT_ALLOWED_HEADERS
    allow_credentials: bool = True
    max_age_seconds: int = PREFLIGHT_MAX_AGE

    def __post_init__(self):
        if self.allow_credentials and self.allowed_origin == "*":
            raise ValueError("credentialed responses cannot use a wildcard origin")

    def headers(self) -> Dict[str, str]:
        headers = {
            "Access-Control-Allow-Methods": ", ".join(sorted(self.allowed_methods)),
            "Access-Control-Allow-Headers": ", ".join(sorted(self.allowed_headers)),
            "Access-Control-Max-Age": str(self.max_age_seconds),
            "Vary": "Origin",
        }
        # Unknown origins get no Allow-Origin at all, never a wildcard
        if self.allowed_origin is not None:
            headers["Access-Control-Allow-Origin"] = self.allowed_origin
            if self.allow_credentials:
                headers["Access-Control-Allow-Credentials"] = "true"
        return headers


class OriginPolicy:
    def __init__(
        self,
        allowed_origins: Iterable[str],
        allowed_headers: Iterable[str] = DEFAULT_ALLOWED_HEADERS,
        max_age: int = PREFLIGHT_MAX_AGE,
    ):
        self.allowed_origins = frozenset(allowed_origins)
        if "*" in self.allowed_origins:
            raise ValueError("wildcard origin cannot be combined with credentialed cookies")
        self.allowed_headers = frozenset(allowed_headers) | DEFAULT_ALLOWED_HEADERS
        self.max_age = max_age
        self._lower_headers = {h.lower(): h for h in self.allowed_headers}

    def is_allowed(self, origin: Optional[str]) -> bool:
        return origin is not None and origin in self.allowed_origins

    def decide(
        self,
        origin: Optional[str],
        method: str = "GET",
        requested_headers: Optional[str] = None,
    ) -> Optional[OriginDecision]:
        """Return the decision for a request, or None when no Origin was sent."""
        if not origin:
            return None

        headers = set(DEFAULT_ALLOWED_HEADERS)
        if requested_headers:
            for name in requested_headers.split(","):
                known = self._lower_headers.get(name.strip().lower())
                if known:
                    headers.add(known)

        allowed_origin = origin if self.is_allowed(origin) else None
        if allowed_origin is None:
            logger.info("origin not in allow-list", extra={"origin": origin})
        return OriginDecision(
            allowed_origin=allowed_origin,
            allowed_headers=frozenset(headers),
            max_age_seconds=self.max_age,
        )


class OriginPolicyMiddleware(BaseHTTPMiddleware):
    """Answer preflights and annotate every /api/* response with CORS headers."""

    def __init__(self, app, policy: OriginPolicy, path_prefix: str = "/api"):
        super().__init__(app)
        self.policy = policy
        self.path_prefix = path_prefix

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(self.path_prefix):
            return await call_next(request)

        decision = self.policy.decide(
            request.headers.get("origin"),
            request.method,
            request.headers.get("access-control-request-headers"),
        )

        if request.method == "OPTIONS":
            response = Response(status_code=204)
        else:
            response = await call_next(request)

        if decision is not None:
            for name, value in decision.headers().items():
                if name == "Vary":
                    value = merge_vary(response.headers.get("vary"), value)
                response.headers[name] = value
        return response


def merge_vary(existing: Optional[str], value: str) -> str:
    """Add value to an existing Vary list unless it is already there."""
    if not existing:
        return value
    present = {item.strip().lower() for item in existing.split(",")}
    if value.lower() in present or "*" in present:
        return existing
    return f"{existing}, {value}"
