"""The API to assemble a service from its implementations and features."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Sequence

from aiohttp import web

from mikros.context import ServiceAlreadyInitialized
from mikros.errors import ModuleError, ServiceError
from mikros.grpc_service import Grpc
from mikros.http_service import Http
from mikros.native import Native, NativeService
from mikros.plugin import Feature, Lifecycle
from mikros.plugin import Service as ServicePlugin
from mikros.script import Script, ScriptService
from mikros.service import Service


class ServiceBuilder:
    """Collects the implementation of each configured service type."""

    def __init__(self) -> None:
        self.servers: dict[str, ServicePlugin] = {}
        self.features: list[Feature] = []
        self.custom_service_types: list[str] = []
        self.service_options: dict[str, Any] = {}

    def _add(self, server: ServicePlugin) -> str:
        kind = str(server.kind())
        if kind in self.servers:
            raise ServiceError.from_error(ServiceAlreadyInitialized(kind))
        self.servers[kind] = server
        return kind

    def native(self, svc: NativeService) -> ServiceBuilder:
        """Use ``svc`` as the native service implementation."""
        self._add(Native(svc))
        return self

    def script(self, svc: ScriptService) -> ServiceBuilder:
        """Use ``svc`` as the script service implementation."""
        self._add(Script(svc))
        return self

    def grpc(self, register: Callable[[Any], Any]) -> ServiceBuilder:
        """Serve gRPC with the servicers that ``register`` adds to the server."""
        self._add(Grpc(register))
        return self

    def grpc_with_lifecycle(
        self, register: Callable[[Any], Any], lifecycle: Lifecycle
    ) -> ServiceBuilder:
        self._add(Grpc(register, lifecycle))
        return self

    def http(self, routes: Iterable[web.AbstractRouteDef]) -> ServiceBuilder:
        """Serve HTTP with the given routes."""
        self._add(Http(routes))
        return self

    def http_with_lifecycle(
        self, routes: Iterable[web.AbstractRouteDef], lifecycle: Lifecycle
    ) -> ServiceBuilder:
        self._add(Http(routes, lifecycle=lifecycle))
        return self

    def http_with_state(
        self, routes: Iterable[web.AbstractRouteDef], state: Any
    ) -> ServiceBuilder:
        """Serve HTTP, handing ``state`` to the handlers through their ServiceState."""
        self._add(Http(routes, app_state=state))
        return self

    def http_with_lifecycle_and_state(
        self, routes: Iterable[web.AbstractRouteDef], lifecycle: Lifecycle, state: Any
    ) -> ServiceBuilder:
        self._add(Http(routes, lifecycle=lifecycle, app_state=state))
        return self

    def with_features(self, features: Iterable[Feature]) -> ServiceBuilder:
        """Make features available to the service through its context."""
        self.features.extend(features)
        return self

    def custom(self, custom_service: ServicePlugin) -> ServiceBuilder:
        """Use a custom service kind with its own implementation."""
        kind = self._add(custom_service)
        self.custom_service_types.append(kind)
        return self

    def without_health_endpoint(self) -> ServiceBuilder:
        """Disable the default /health endpoint of HTTP services."""
        self.service_options["without_health_endpoint"] = True
        return self

    def build(self, argv: Sequence[str] | None = None) -> Service:
        """Load the service settings and build the service to be started."""
        try:
            return Service(self, argv)
        except ModuleError as exc:
            raise ServiceError.from_error(exc) from exc