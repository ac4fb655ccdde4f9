"""Service-to-service JWT credentials.

The order service calls privileged inventory endpoints (stock adjustments)
on behalf of the system, not of the buyer.  It authenticates those calls
with a short-lived HS256 token signed with ``SERVICE_TOKEN_SECRET`` and
carrying ``token_type="service"`` plus a ``role`` claim.

Security decisions
------------------
* **Fail Closed** — any decode / validation error returns 401.
* ``algorithms`` is pinned to ``SERVICE_TOKEN_ALGORITHM``; never derived from
  the incoming token header.
* Buyer tokens (SimpleJWT) are never accepted here: the ``token_type`` claim
  must be ``service``.
"""

from __future__ import annotations

from datetime import datetime, timezone

import jwt as pyjwt
import structlog
from django.conf import settings
from jwt.exceptions import PyJWTError
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.permissions import BasePermission

logger = structlog.get_logger(__name__)

SERVICE_TOKEN_TYPE = "service"
ADMIN_ROLE = "ADMIN"


def issue_service_token(subject: str | None = None, role: str = ADMIN_ROLE) -> str:
    """Sign a short-lived elevated token for an internal call."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject or settings.SERVICE_TOKEN_SUBJECT,
        "role": role,
        "token_type": SERVICE_TOKEN_TYPE,
        "iat": now,
        "exp": now + settings.SERVICE_TOKEN_LIFETIME,
    }
    return pyjwt.encode(
        payload,
        settings.SERVICE_TOKEN_SECRET,
        algorithm=settings.SERVICE_TOKEN_ALGORITHM,
    )


class ServicePrincipal:
    """Lightweight user object for requests authenticated with a service token.

    There is no local ``User`` row behind it; views read ``.sub`` and
    ``.role`` to make authorisation decisions.
    """

    def __init__(self, payload: dict):
        self.payload = payload
        self.sub: str = payload.get("sub", "")
        self.role: str = payload.get("role", "")

    # DRF checks
    is_authenticated = True
    is_active = True

    def __str__(self) -> str:  # pragma: no cover
        return self.sub


class ServiceTokenAuthentication(BaseAuthentication):
    """DRF authentication class that validates service Bearer tokens."""

    keyword = "Bearer"

    def authenticate(self, request):
        """Return ``(ServicePrincipal, token)`` or ``None`` (no credentials)."""
        header = request.META.get("HTTP_AUTHORIZATION", "")
        if not header:
            return None

        token = self._extract_token(header)
        payload = self._decode_token(token)
        principal = ServicePrincipal(payload)
        logger.info("service_token_authenticated", sub=principal.sub)
        return (principal, token)

    def authenticate_header(self, request):
        """Value for the ``WWW-Authenticate`` response header on 401."""
        return f'{self.keyword} realm="internal"'

    @staticmethod
    def _extract_token(header: str) -> str:
        parts = header.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise AuthenticationFailed("Invalid Authorization header format.")
        return parts[1]

    @staticmethod
    def _decode_token(token: str) -> dict:
        try:
            payload = pyjwt.decode(
                token,
                settings.SERVICE_TOKEN_SECRET,
                algorithms=[settings.SERVICE_TOKEN_ALGORITHM],
                options={"require": ["exp", "sub"]},
            )
        except PyJWTError as exc:
            logger.warning("service_token_validation_failed", error=str(exc))
            raise AuthenticationFailed(f"Token validation failed: {exc}") from exc
        if payload.get("token_type") != SERVICE_TOKEN_TYPE:
            raise AuthenticationFailed("A service token is required.")
        return payload


class IsServicePrincipal(BasePermission):
    """Grants access only to service principals holding the ADMIN role."""

    message = "An elevated service credential is required."

    def has_permission(self, request, view) -> bool:
        user = request.user
        return isinstance(user, ServicePrincipal) and user.role == ADMIN_ROLE
