"""
Resolution of per-service, per-environment configuration and signing adapters.

Service options are declared as ``service -> environment -> options``. A
shared block under ``"*"`` (or ``True`` in hand-written Python configs)
applies to every environment; the block of the current environment is merged
over it. Each registry resolves and caches its own configurations, so two
registries never share state.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from typing import Any

from marshmallow import ValidationError

from oauthkit.infra.oauth.oauth1 import OAuth1Adapter
from oauthkit.infra.oauth.oauth2 import OAuth2Adapter
from oauthkit.schemas.service_config import ServiceConfigSchema
from oauthkit.services._shared.errors import (
    AdapterNotImplemented,
    InvalidConfiguration,
    UnknownService,
)
from oauthkit.services._shared.ports.signing_adapter import SigningAdapter
from oauthkit.services._shared.ports.transport import HttpTransport
from oauthkit.services.consumer.dto import ServiceConfig

log = logging.getLogger(__name__)

AdapterFactory = Callable[..., SigningAdapter]

ADAPTERS: dict[str, AdapterFactory] = {
    "oauth": OAuth1Adapter,
    "oauth1": OAuth1Adapter,
    "oauth2": OAuth2Adapter,
}

SHARED_KEYS: tuple[Any, ...] = ("*", True)


class ServiceRegistry:
    """
    Explicit, constructed configuration of every known service.

    :param services: ``service -> environment -> options`` mapping.
    :param environment: Name of the current environment.
    :param adapters: Adapter name to factory; defaults to :data:`ADAPTERS`.
        Factories are called as ``factory(config, transport=..., timeout=...)``.
    :param defaults: Options applied below every service block (e.g. ``realm``).
    :param transport: HTTP transport handed to adapter factories.
    :param timeout: Provider request timeout handed to adapter factories.
    """

    def __init__(
        self,
        services: Mapping[str, Mapping[Any, Mapping[str, Any]]],
        environment: str,
        *,
        adapters: Mapping[str, AdapterFactory] | None = None,
        defaults: Mapping[str, Any] | None = None,
        transport: HttpTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._services = {name: dict(blocks) for name, blocks in services.items()}
        self.environment = environment
        self.adapters: dict[str, AdapterFactory] = dict(ADAPTERS if adapters is None else adapters)
        self.defaults = dict(defaults or {})
        self.transport = transport
        self.timeout = timeout
        self._configs: dict[str, ServiceConfig] = {}
        self._instances: dict[str, SigningAdapter] = {}
        self._guard = threading.Lock()

    def names(self) -> list[str]:
        return sorted(self._services)

    def _merged(self, service: str) -> dict[str, Any]:
        blocks = self._services.get(service)
        if blocks is None:
            raise UnknownService(service)
        shared: dict[str, Any] = {}
        for key in SHARED_KEYS:
            if key in blocks:
                shared.update(blocks[key])
        env_block = blocks.get(self.environment)
        if env_block is None and not shared:
            raise UnknownService(service)
        return {**self.defaults, **shared, **(env_block or {})}

    def config(self, service: str) -> ServiceConfig:
        """
        Return the resolved configuration of ``service``.

        :raises UnknownService: When the service has no block for this environment.
        :raises InvalidConfiguration: When the options are invalid.
        """
        with self._guard:
            cached = self._configs.get(service)
        if cached is not None:
            return cached
        try:
            data = ServiceConfigSchema().load(self._merged(service))
        except ValidationError as exc:
            log.error("oauth.invalid_configuration", extra={"service": service})
            raise InvalidConfiguration(service, exc.normalized_messages()) from exc
        config = ServiceConfig(name=service, **data)
        with self._guard:
            return self._configs.setdefault(service, config)

    def adapter(self, service: str) -> SigningAdapter:
        """Return the (cached) signing adapter configured for ``service``."""
        with self._guard:
            cached = self._instances.get(service)
        if cached is not None:
            return cached
        config = self.config(service)
        factory = self.adapters.get(config.adapter)
        if factory is None:
            raise AdapterNotImplemented(f"No signing adapter registered as: {config.adapter}")
        instance = factory(config, transport=self.transport, timeout=self.timeout)
        log.debug("oauth.adapter_loaded", extra={"service": service})
        with self._guard:
            return self._instances.setdefault(service, instance)

    def register(self, name: str, factory: AdapterFactory) -> None:
        """Make an additional adapter selectable by name."""
        self.adapters[name] = factory
