"""Origin allow-list for the guest API.

Response headers and preflight requests are handled by ``CORSMiddleware``;
handlers only use :func:`resolve_cors` to refuse requests from unknown origins.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

WILDCARD = "*"

CORS_METHODS = ["GET", "POST", "PATCH"]
CORS_HEADERS = ["Authorization", "Content-Type"]


def _allow_list(allowed_origins: Sequence[str]) -> List[str]:
    return [item for item in allowed_origins if item] or [WILDCARD]


@dataclass(frozen=True)
class CorsDecision:
    """Origin the request is accepted for, or ``None`` when it is refused."""

    origin: Optional[str]

    @property
    def allowed(self) -> bool:
        return self.origin is not None


def resolve_cors(origin: Optional[str], allowed_origins: Sequence[str]) -> CorsDecision:
    allowed = _allow_list(allowed_origins)
    if WILDCARD in allowed:
        return CorsDecision(origin=WILDCARD)
    candidate = (origin or "").strip()
    if candidate and candidate in allowed:
        return CorsDecision(origin=candidate)
    return CorsDecision(origin=None)


def cors_middleware_options(allowed_origins: Sequence[str]) -> Dict[str, Any]:
    """Keyword arguments for ``CORSMiddleware``; credentials only go to listed origins."""

    origins = _allow_list(allowed_origins)
    return {
        "allow_origins": origins,
        "allow_credentials": WILDCARD not in origins,
        "allow_methods": CORS_METHODS,
        "allow_headers": CORS_HEADERS,
    }


__all__ = ["CORS_HEADERS", "CORS_METHODS", "CorsDecision", "WILDCARD", "cors_middleware_options", "resolve_cors"]
