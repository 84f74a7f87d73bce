"""
Token lifecycle management for named OAuth services.

:class:`OAuthConsumer` drives a service's credentials through
``request -> user authorization -> verify -> refresh -> release`` and signs
outgoing requests with them. Every state transition is persisted through the
:class:`~oauthkit.services.token_cache.service.TokenCache`:

- In-flight requests live in the service's ``temp_cache`` under
  ``<service>-<environment>-temp<nonce>`` for one hour.
- The durable credential lives in ``token_cache`` under
  ``<service>-<environment>-token`` for two years.

Refreshes of the durable credential are serialized through the cache lock
so that at most one caller talks to the provider at a time; everyone else
observes the winner's result.

Public operations never raise :class:`OAuthError`; they return an
:class:`OperationResult` (or :class:`VerifyResult`) carrying the error.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from datetime import timedelta
from typing import Any
from urllib.parse import urlencode

from oauthkit.services._shared.errors import (
    MissingCredentials,
    OAuthError,
    RefreshExhausted,
    UnknownRequest,
)
from oauthkit.services._shared.ports.signing_adapter import SigningAdapter
from oauthkit.services.consumer.dto import OperationResult, TokenRecord, VerifyResult
from oauthkit.services.consumer.registry import ServiceRegistry
from oauthkit.services.token_cache.service import TokenCache

log = logging.getLogger(__name__)

TEMP_TTL = timedelta(hours=1)
TOKEN_TTL = timedelta(days=730)

# Seconds before expiry at which a token is renewed proactively.
REFRESH_THRESHOLD = 300
MAX_REFRESH_ATTEMPTS = 5


def _failure(exc: OAuthError, value: Any = False) -> OperationResult[Any]:
    return OperationResult(value, exc.message, exc.code)


class OAuthConsumer:
    """
    Public entry point for delegated access to remote services.

    :param registry: Service configurations and their signing adapters.
    :param cache: Blocking token cache holding the namespaces services refer to.
    :param environment: Environment name used in cache keys; defaults to
        the registry's environment.
    :param clock: Time source for staleness checks.
    """

    def __init__(
        self,
        registry: ServiceRegistry,
        cache: TokenCache,
        environment: str | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry = registry
        self.cache = cache
        self.environment = environment or registry.environment
        self.clock = clock

    # ------------------------- helpers -------------------------

    def _key(self, service: str, qualifier: str = "token") -> str:
        return "-".join([service, self.environment, qualifier])

    @staticmethod
    def _add_url_params(url: str, params: Mapping[str, Any]) -> str:
        """Append ``params`` to the query string of ``url``."""
        query = urlencode(params)
        if "?" not in url:
            return f"{url}?{query}"
        if url.endswith(("?", "&")):
            return f"{url}{query}"
        return f"{url}&{query}"

    @staticmethod
    def _replays(response: Mapping[str, Any], stored: Mapping[str, Any]) -> bool:
        """Whether every ``(key, value)`` of ``response`` is already in ``stored``."""
        return all(key in stored and stored[key] == value for key, value in response.items())

    def _load(self, name: str, key: str, **options: Any) -> TokenRecord | None:
        raw = self.cache.read(name, key, **options)
        return TokenRecord.from_dict(raw) if raw is not None else None

    def _store(self, name: str, key: str, record: TokenRecord, ttl: timedelta) -> None:
        self.cache.write(name, key, record.to_dict(), ttl)

    def _stale(
        self,
        adapter: SigningAdapter,
        record: TokenRecord,
        threshold: int | None,
        replacing: Mapping[str, Any],
    ) -> bool:
        expires = adapter.expires(record.token)
        if not expires:
            return False
        if threshold is None:
            # forced renewal: stale until the token we set out to replace is gone
            return record.token == replacing
        now = self.clock()
        if threshold == 0:
            return now >= expires
        return now + threshold > expires

    def _renew(
        self, service: str, adapter: SigningAdapter, name: str, key: str, record: TokenRecord
    ) -> TokenRecord:
        """Call the provider with the lock held; the write releases the lock."""
        try:
            token = adapter.refresh(record.token)
        except OAuthError as exc:
            record.authorized = False
            record.error = exc.message
            self._store(name, key, record, TOKEN_TTL)
            log.warning("oauth.refresh_failed", extra={"service": service, "key": key})
            raise
        record.token = token
        record.authorized = True
        record.error = None
        self._store(name, key, record, TOKEN_TTL)
        log.info(
            "oauth.refreshed",
            extra={"service": service, "key": key, "expires": adapter.expires(token)},
        )
        return record

    def _refresh(self, service: str, threshold: int | None = None) -> TokenRecord:
        """
        Return the durable record of ``service``, renewing it when stale.

        With ``threshold`` the token is renewed when it expires within that
        many seconds (``0``: only once expired). Without one the renewal is
        forced whenever the token has an expiry at all.

        Only the caller that obtains the cache lock talks to the provider.
        Callers that lose the race wait for the lock holder and use its
        result. Gives up after :data:`MAX_REFRESH_ATTEMPTS` lock attempts.

        :raises MissingCredentials: No authorized durable record.
        :raises RefreshExhausted: The lock could not be obtained in time.
        :raises OAuthError: The provider refused the renewal.
        """
        config = self.registry.config(service)
        adapter = self.registry.adapter(service)
        name, key = config.token_cache, self._key(service)

        record = self._load(name, key)
        if record is None or not record.authorized:
            raise MissingCredentials()
        replacing = record.token

        attempt = 0
        while self._stale(adapter, record, threshold, replacing):
            attempt += 1
            if attempt > MAX_REFRESH_ATTEMPTS:
                log.warning("oauth.refresh_exhausted", extra={"service": service, "key": key})
                raise RefreshExhausted()

            if self.cache.block(name, key):
                try:
                    current = self._load(name, key)
                    if current is None or not current.authorized:
                        raise MissingCredentials(current.error if current else None)
                    if not self._stale(adapter, current, threshold, replacing):
                        log.debug("oauth.refresh_skipped", extra={"service": service, "key": key})
                        return current
                    log.info(
                        "oauth.refresh_started",
                        extra={"service": service, "key": key, "attempt": attempt},
                    )
                    return self._renew(service, adapter, name, key, current)
                finally:
                    self.cache.unblock(name, key)

            log.debug(
                "oauth.refresh_contended",
                extra={"service": service, "key": key, "attempt": attempt},
            )
            record = self._load(name, key)
            if record is None or not record.authorized:
                raise MissingCredentials(record.error if record else None)
        return record

    # --------------------------- API -----------------------------

    def request_authorization(
        self, service: str, request: Mapping[str, Any] | None = None
    ) -> OperationResult[bool | str]:
        """
        Ask the provider for authorization.

        :param request: Context such as ``nonce``, ``callback`` (the URL the
            provider sends the user back to) and anything the caller wants
            echoed back by :meth:`verify_authorization`. A ``nonce`` is
            appended to the callback so the callback can be matched.
        :returns: ``True`` when access was granted immediately, the URL the
            user must visit, or ``False`` on failure.
        """
        request = dict(request or {})
        try:
            config = self.registry.config(service)
            adapter = self.registry.adapter(service)
        except OAuthError as exc:
            return _failure(exc)

        nonce = str(request.get("nonce") or "")
        if nonce and request.get("callback"):
            request["callback"] = self._add_url_params(request["callback"], {"nonce": nonce})
        temp_key = self._key(service, f"temp{nonce}")
        record = TokenRecord(request=request)

        try:
            record.token, outcome = adapter.request(request)
        except OAuthError as exc:
            record.error = exc.message
            self._store(config.temp_cache, temp_key, record, TEMP_TTL)
            log.warning("oauth.request_failed", extra={"service": service, "key": temp_key})
            return _failure(exc)

        record.authorized = outcome is True
        try:
            self._store(config.temp_cache, temp_key, record, TEMP_TTL)
            if record.authorized:
                self._store(config.token_cache, self._key(service), record, TOKEN_TTL)
        except OAuthError as exc:
            return _failure(exc)
        log.info(
            "oauth.request_issued",
            extra={"service": service, "key": temp_key},
        )
        return OperationResult(outcome)

    def verify_authorization(
        self, service: str, response: Mapping[str, Any]
    ) -> VerifyResult:
        """
        Complete an authorization with the provider's callback parameters.

        ``response`` must carry the ``nonce`` used for the request, if any.
        A callback that was already verified is replayed without contacting
        the provider again, provided it matches what was verified.
        """
        response = dict(response or {})
        try:
            config = self.registry.config(service)
            adapter = self.registry.adapter(service)
            nonce = str(response.get("nonce") or "")
            name, key = config.temp_cache, self._key(service, f"temp{nonce}")

            self.cache.block(name, key, wait=True)
            try:
                record = self._load(name, key)
                if record is None or (
                    record.authorized and not self._replays(response, record.response)
                ):
                    log.warning("oauth.verify_unknown", extra={"service": service, "key": key})
                    raise UnknownRequest()
                if record.authorized:
                    log.info("oauth.verify_replayed", extra={"service": service, "key": key})
                    return VerifyResult(True, record.request)

                record.response = response
                try:
                    record.token = adapter.verify(record.token, response)
                except OAuthError as exc:
                    record.authorized = False
                    record.error = exc.message
                    self._store(name, key, record, TEMP_TTL)
                    log.warning("oauth.verify_failed", extra={"service": service, "key": key})
                    return VerifyResult(False, record.request, exc.message, exc.code)

                record.authorized = True
                record.error = None
                self._store(name, key, record, TEMP_TTL)
                self._store(config.token_cache, self._key(service), record, TOKEN_TTL)
                log.info(
                    "oauth.verified",
                    extra={
                        "service": service,
                        "key": key,
                        "expires": adapter.expires(record.token),
                    },
                )
                return VerifyResult(True, record.request)
            finally:
                self.cache.unblock(name, key)
        except OAuthError as exc:
            return VerifyResult(False, error=exc.message, error_code=exc.code)

    def has_access(
        self, service: str, request: Mapping[str, Any] | None = None
    ) -> OperationResult[bool]:
        """
        Whether ``service`` currently grants the access described by ``request``.

        A token that expires within :data:`REFRESH_THRESHOLD` seconds is
        renewed first.
        """
        try:
            record = self._refresh(service, REFRESH_THRESHOLD)
            self.registry.adapter(service).has_access(record.token, request or {})
        except OAuthError as exc:
            return _failure(exc)
        return OperationResult(True)

    def expires(self, service: str) -> OperationResult[int | None]:
        """Epoch at which the credentials of ``service`` must be renewed."""
        try:
            config = self.registry.config(service)
            record = self._load(config.token_cache, self._key(service))
            if record is None or not record.authorized:
                raise MissingCredentials()
            return OperationResult(self.registry.adapter(service).expires(record.token))
        except OAuthError as exc:
            return _failure(exc, None)

    def refresh(self, service: str) -> OperationResult[bool]:
        """Renew the credentials of ``service`` regardless of how fresh they are."""
        try:
            self._refresh(service)
        except OAuthError as exc:
            return _failure(exc)
        return OperationResult(True)

    def release(self, service: str) -> OperationResult[bool]:
        """Give up the credentials of ``service``. Releasing twice is harmless."""
        try:
            config = self.registry.config(service)
            adapter = self.registry.adapter(service)
            name, key = config.token_cache, self._key(service)

            self.cache.block(name, key, wait=True)
            try:
                record = self._load(name, key)
                if record is None or not record.authorized:
                    return OperationResult(True)
                record.authorized = False
                self._store(name, key, record, TOKEN_TTL)
            finally:
                self.cache.unblock(name, key)

            adapter.release(record.token)
            log.info("oauth.released", extra={"service": service, "key": key})
        except OAuthError as exc:
            return _failure(exc)
        return OperationResult(True)

    def invoke(
        self,
        method: str,
        service: str,
        path: str | None = None,
        data: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> OperationResult[str | None]:
        """
        Send an authenticated request to ``service`` and return the response body.

        :param method: HTTP method.
        :param path: Named path from the service options, absolute URL, or
            path relative to the service ``base``.
        """
        try:
            record = self._refresh(service, REFRESH_THRESHOLD)
            body = self.registry.adapter(service).access(
                method, record.token, path or "", data, options
            )
        except OAuthError as exc:
            log.warning("oauth.access_failed", extra={"service": service, "endpoint": path})
            return _failure(exc, None)
        return OperationResult(body)

    def get(
        self,
        service: str,
        path: str | None = None,
        data: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> OperationResult[str | None]:
        return self.invoke("GET", service, path, data, options)

    def post(
        self,
        service: str,
        path: str | None = None,
        data: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> OperationResult[str | None]:
        return self.invoke("POST", service, path, data, options)

    def put(
        self,
        service: str,
        path: str | None = None,
        data: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> OperationResult[str | None]:
        return self.invoke("PUT", service, path, data, options)

    def patch(
        self,
        service: str,
        path: str | None = None,
        data: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> OperationResult[str | None]:
        return self.invoke("PATCH", service, path, data, options)

    def delete(
        self,
        service: str,
        path: str | None = None,
        data: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> OperationResult[str | None]:
        return self.invoke("DELETE", service, path, data, options)

    def head(
        self,
        service: str,
        path: str | None = None,
        data: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> OperationResult[str | None]:
        return self.invoke("HEAD", service, path, data, options)
