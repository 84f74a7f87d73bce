"""
Domain-level exceptions used within the service layer.

These exceptions are **framework-agnostic** and never import Flask, requests
or SQLAlchemy. They are raised by signing adapters, cache backends and the
token lifecycle internals, and are converted into result objects at the
public boundary of :class:`~oauthkit.services.consumer.service.OAuthConsumer`.

The translation to HTTP responses (RFC 7807) for the front door is handled by
``oauthkit/core/errors.py`` via :func:`translate_exceptions`.
"""

from __future__ import annotations

# --------------------------------------------------------------------------- #
# Base types
# --------------------------------------------------------------------------- #


class ServiceError(Exception):
    """
    Base class for all service-level errors.

    Notes
    -----
    - These are *not* HTTP errors.
    - The API layer translates them to :class:`~oauthkit.core.errors.APIError`.
    """

    pass


class OAuthError(ServiceError):
    """
    Base class for failures of the delegated-access flow.

    :param message: Human-readable explanation, safe to show to end users.
    :type message: str | None

    :cvar code: Stable machine-readable category.
    :cvar default_message: Message used when none is given.
    """

    code = "oauth_error"
    default_message = "OAuth operation failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# --------------------------------------------------------------------------- #
# Specific errors
# --------------------------------------------------------------------------- #


class MissingCredentials(OAuthError):
    """No durable record exists for the service, or it is unauthorized."""

    code = "missing_credentials"
    default_message = "Unable to locate valid access credentials."


class Expired(OAuthError):
    """The token is past its expiry and cannot be renewed."""

    code = "expired"
    default_message = "The authorization has expired."


class MismatchedToken(OAuthError):
    """The provider callback references a different token than the one on file."""

    code = "mismatched_token"
    default_message = "Mismatching request token."


class UnknownRequest(OAuthError):
    """A callback arrived for a request that was never issued (or was tampered with)."""

    code = "unknown_request"
    default_message = "Unable to locate authorization request."


class RemoteError(OAuthError):
    """
    The provider answered with a non-success status or an explicit problem code.

    :param status: HTTP status returned by the provider (``None`` if unknown).
    :type status: int | None
    :param detail: Provider-reported problem, already humanized.
    :type detail: str | None
    :param body: Raw response body, if any.
    :type body: str | None
    """

    code = "remote_error"

    def __init__(
        self,
        status: int | None = None,
        detail: str | None = None,
        *,
        body: str | None = None,
    ) -> None:
        self.status = status
        self.detail = detail
        self.body = body
        message = f"Error {status}" if status is not None and status != 200 else "Unknown Error"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class RefreshExhausted(OAuthError):
    """The contention retry loop gave up without obtaining a fresh token."""

    code = "refresh_exhausted"
    default_message = "Unable to refresh token."


class LockUnavailable(OAuthError):
    """A cache lock could not be obtained within the configured bound."""

    code = "lock_unavailable"
    default_message = "Unable to obtain a lock on the token cache."


class UnknownService(OAuthError):
    """The requested service name has no configuration for this environment."""

    code = "unknown_service"

    def __init__(self, service: str) -> None:
        self.service = service
        super().__init__(f"No OAuth configuration found for service: {service}")


class UnknownCache(OAuthError):
    """No token cache backend is registered under the requested namespace."""

    code = "unknown_cache"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"No token cache configured under: {name}")


class InvalidConfiguration(OAuthError):
    """
    The options configured for a service failed validation.

    :param service: Name of the misconfigured service.
    :type service: str
    :param errors: Field name to list of validation messages.
    :type errors: dict | None
    """

    code = "invalid_configuration"

    def __init__(self, service: str, errors: dict | None = None) -> None:
        self.service = service
        self.errors = errors or {}
        fields = ", ".join(sorted(self.errors)) or "unknown"
        super().__init__(f"Invalid OAuth configuration for service {service}: {fields}")


class AdapterNotImplemented(OAuthError):
    """The selected signing adapter does not implement this operation."""

    code = "not_implemented"
    default_message = "This OAuth adapter is not implemented."


__all__ = [
    "ServiceError",
    "OAuthError",
    "MissingCredentials",
    "Expired",
    "MismatchedToken",
    "UnknownRequest",
    "RemoteError",
    "RefreshExhausted",
    "LockUnavailable",
    "UnknownService",
    "UnknownCache",
    "InvalidConfiguration",
    "AdapterNotImplemented",
]
