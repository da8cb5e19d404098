"""
Error taxonomy shared by routes and clients.

Only `BadRequest` carries a message meant for the user. Upstream failures are
reported with a generic message; details stay in the server logs.
"""

from __future__ import annotations


class LinkgateError(Exception):
    status_code = 500
    public_message = "Internal server error"


class BadRequest(LinkgateError):
    """Missing query parameter or ephemeral cookie; the user can restart the flow."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.public_message = message


class Unauthenticated(LinkgateError):
    """No valid identity; resolved by redirecting to login."""

    status_code = 302
    redirect_to = "/auth/login"


class NotLinked(LinkgateError):
    """Identity has no linked credential; resolved by redirecting to onboarding."""

    status_code = 302
    redirect_to = "/onboarding"


class UpstreamFailure(LinkgateError):
    """Identity provider or third-party call failed or returned non-success."""

    status_code = 500

    def __init__(self, message: str, *, public_message: str = "Upstream service error") -> None:
        super().__init__(message)
        self.public_message = public_message
