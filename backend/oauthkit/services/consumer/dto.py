from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class ServiceConfig:
    """
    Resolved configuration of one named service in one environment.

    :param name: Service name (first segment of every cache key).
    :param adapter: Signing adapter name (``"oauth"``, ``"oauth2"``, ...).
    :param temp_cache: TokenCache namespace for in-flight request records.
    :param token_cache: TokenCache namespace for durable access records.
    :param consumer_app_id: Application id issued by the provider.
    :param consumer_key: Consumer key issued by the provider.
    :param consumer_secret: Consumer secret issued by the provider.
    :param base: Base URL merged into the endpoint paths.
    :param request_token: Request-token endpoint path.
    :param access_token: Access-token endpoint path.
    :param authorize: User authorization endpoint path.
    :param proxy: Alternate host to send requests to (still signed for ``base``).
    :param realm: Realm advertised in the Authorization header.
    :param signature_method: ``HMAC-SHA1`` or ``PLAINTEXT``.
    :param headers: Send OAuth parameters in the Authorization header.
    :param extra: Any other named paths or provider-specific options.
    """

    name: str
    adapter: str = "oauth"
    temp_cache: str = "default"
    token_cache: str = "default"
    consumer_app_id: str = "app"
    consumer_key: str = "key"
    consumer_secret: str = "secret"
    base: str | None = None
    request_token: str = "/oauth/get_request_token"
    access_token: str = "/oauth/get_token"
    authorize: str = "/oauth/request_auth"
    proxy: str | None = None
    realm: str = "oauthkit"
    signature_method: str = "HMAC-SHA1"
    headers: bool = True
    extra: Mapping[str, Any] = field(default_factory=dict)

    def option(self, key: str) -> Any:
        """Return a named option, looking at declared fields first, then ``extra``."""
        if key in self.__dataclass_fields__ and key not in {"extra", "name"}:
            return getattr(self, key)
        return self.extra.get(key)


@dataclass(slots=True)
class TokenRecord:
    """
    Unit persisted in the token cache for both in-flight and durable records.

    :ivar token: Opaque credential data, interpreted only by the signing adapter.
    :ivar request: Caller context echoed back on verification (e.g. a return URL).
    :ivar response: Provider callback data, present after verification.
    :ivar authorized: Whether the record grants access.
    :ivar error: Last failure message, if any.
    """

    token: dict[str, Any] = field(default_factory=dict)
    request: dict[str, Any] = field(default_factory=dict)
    response: dict[str, Any] = field(default_factory=dict)
    authorized: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": dict(self.token),
            "request": dict(self.request),
            "response": dict(self.response),
            "authorized": self.authorized,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TokenRecord:
        return cls(
            token=dict(data.get("token") or {}),
            request=dict(data.get("request") or {}),
            response=dict(data.get("response") or {}),
            authorized=bool(data.get("authorized", False)),
            error=data.get("error"),
        )


@dataclass(frozen=True, slots=True)
class OperationResult(Generic[T]):
    """
    Outcome of a public lifecycle operation.

    :param value: Operation-specific value (``False``/``None`` on failure).
    :param error: Human-readable failure message.
    :param error_code: Stable category of the failure (see ``OAuthError.code``).
    """

    value: T
    error: str | None = None
    error_code: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def __bool__(self) -> bool:
        return self.ok


@dataclass(frozen=True, slots=True)
class VerifyResult:
    """
    Outcome of :meth:`OAuthConsumer.verify_authorization`.

    :param value: Whether the authorization has been granted.
    :param request: Context stored by the initial authorization request.
    :param error: Human-readable failure message.
    :param error_code: Stable category of the failure.
    """

    value: bool
    request: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    error_code: str | None = None

    @property
    def ok(self) -> bool:
        return self.value

    def __bool__(self) -> bool:
        return self.value
