"""Interfaces that features and service kinds implement."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from mikros.context import Context
    from mikros.definition import Definitions, ServiceKind
    from mikros.env import Env


class Lifecycle:
    """Callbacks run when a service starts and when it finishes."""

    async def on_start(self, ctx: Context) -> None:
        return None

    async def on_finish(self) -> None:
        return None


class Feature(ABC):
    """A pluggable feature available to services through their context."""

    @abstractmethod
    def name(self) -> str:
        """The feature name."""

    @abstractmethod
    def info(self) -> Any:
        """Information about the feature, logged when the service starts."""

    @abstractmethod
    def is_enabled(self) -> bool:
        """Whether the feature is currently enabled."""

    @abstractmethod
    def can_be_initialized(self, definitions: Definitions, envs: Env) -> bool:
        """Whether the feature should be initialized."""

    @abstractmethod
    async def initialize(self, ctx: Context) -> None:
        """Prepare everything the feature needs to run."""

    @abstractmethod
    async def cleanup(self) -> None:
        """Release the feature's resources."""

    def service_api(self) -> Any:
        """The object services use to reach the feature."""
        return self


class ServiceExecutionMode(Enum):
    """Whether a service keeps running until stopped or finishes by itself."""

    BLOCK = "block"
    NON_BLOCK = "non_block"


class Service(Lifecycle, ABC):
    """A kind of service the framework can run."""

    @abstractmethod
    def kind(self) -> ServiceKind:
        """The service kind."""

    @abstractmethod
    def info(self) -> Any:
        """Information about the service, logged when it starts."""

    @abstractmethod
    def mode(self) -> ServiceExecutionMode:
        """How the service executes."""

    @abstractmethod
    def initialize(
        self,
        ctx: Context,
        definitions: Definitions,
        envs: Env,
        options: dict[str, Any],
    ) -> None:
        """Store whatever the service needs before it runs."""

    @abstractmethod
    async def run(self, ctx: Context, shutdown: asyncio.Event) -> None:
        """Run the service; ``shutdown`` is set when it must finish."""

    @abstractmethod
    async def stop(self, ctx: Context) -> None:
        """Let the service shut down gracefully."""