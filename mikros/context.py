"""The context handed to services and features while they run."""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable

from mikros.definition import Definitions
from mikros.env import Env
from mikros.errors import ModuleError, ServiceError
from mikros.logger import Logger
from mikros.plugin import Feature


class ServiceModuleError(ModuleError):
    """Base for errors raised while running a service."""


class EmptyServiceFound(ServiceModuleError):
    template = "cannot execute without a service implementation"


class FeatureNotFound(ServiceModuleError):
    template = "feature '{}' not found"


class UnsupportedServicesExecutionMode(ServiceModuleError):
    template = "unsupported services execution mode"


class ServiceKindUninitialized(ServiceModuleError):
    template = "service type uninitialized: {}"


class FeatureDisabled(ServiceModuleError):
    template = "feature '{}' is disabled"


class ServiceAlreadyInitialized(ServiceModuleError):
    template = "service '{}' already initialized"


class ServiceImplementationNotFound(ServiceModuleError):
    template = "service '{}' implementation not found"


@dataclass
class Context:
    """Everything a service can reach while its callbacks run."""

    logger: Logger
    definitions: Definitions
    envs: Env
    features: list[Feature] = field(default_factory=list)

    def env(self, name: str) -> str | None:
        """The value of an environment variable named in the definitions file."""
        return self.envs.get_defined_env(name)

    def service_name(self) -> str:
        return self.definitions.name

    def client_connection_url(self, client_name: str) -> str:
        """The address of a coupled service."""
        client = self.definitions.client(client_name)
        if client is not None:
            return f"{client.host}:{client.port}"
        return f"{client_name}.{self.envs.coupled_namespace}:{self.envs.coupled_port}"

    async def feature(self, name: str) -> Feature:
        """The enabled feature called ``name``."""
        found = next((f for f in self.features if f.name() == name), None)
        if found is None:
            raise ServiceError.from_error(FeatureNotFound(name), self)
        if not found.is_enabled():
            raise ServiceError.from_error(FeatureDisabled(name), self)
        return found

    async def initialize_features(self) -> None:
        for feature in list(self.features):
            if feature.can_be_initialized(self.definitions, self.envs):
                await feature.initialize(self)

    async def cleanup_features(self) -> None:
        for feature in list(self.features):
            if feature.is_enabled():
                await feature.cleanup()


async def execute_on(ctx: Context, name: str, func: Callable[[Any], Any]) -> None:
    """Call ``func`` with the public API of an enabled feature."""
    feature = await ctx.feature(name)
    api = feature.service_api()
    if api is None:
        return
    result = func(api)
    if inspect.isawaitable(result):
        await result