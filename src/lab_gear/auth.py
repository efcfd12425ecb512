"""
Bearer token gate for protected inventory routes.

Attach an instance as a router dependency; it runs before the route handler,
so a rejected request never reads its body or touches the store.
"""

import hmac

from fastapi import Request

from lab_gear.errors import AuthenticationError
from lab_gear.logging import get_logger

BEARER_PREFIX = "Bearer "


class BearerAuth:
    """Validates ``Authorization: Bearer <token>`` against a shared secret."""

    def __init__(self, token: str):
        if not token:
            raise ValueError("BearerAuth requires a non-empty token")
        self._token = token.encode("utf-8")
        self.logger = get_logger("lab_gear.auth")

    def __call__(self, request: Request) -> None:
        header = request.headers.get("authorization", "")
        if not header.startswith(BEARER_PREFIX):
            self._reject(request, "missing bearer prefix")

        presented = header[len(BEARER_PREFIX):].encode("utf-8")
        if not hmac.compare_digest(presented, self._token):
            self._reject(request, "token mismatch")

    def _reject(self, request: Request, reason: str) -> None:
        self.logger.log_auth_failure(request.method, request.url.path, reason)
        # Same error whichever check failed
        raise AuthenticationError("unauthorized")
