"""Native services: started once, running in the background until stopped."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any

from mikros.context import Context
from mikros.definition import Definitions, ServiceKind
from mikros.env import Env
from mikros.plugin import Lifecycle, Service, ServiceExecutionMode


class NativeService(Lifecycle, ABC):
    """The API a native service implements."""

    @abstractmethod
    async def start(self, ctx: Context) -> None:
        """Initialize the service, put its jobs to run in background and return."""

    @abstractmethod
    async def stop(self, ctx: Context) -> None:
        """Finish every job started by ``start``."""


class Native(Service):
    """Runs a native service implementation."""

    def __init__(self, svc: NativeService) -> None:
        self.svc = svc
        self._lock = asyncio.Lock()

    def kind(self) -> ServiceKind:
        return ServiceKind.NATIVE

    def info(self) -> dict[str, Any]:
        return {"kind": str(self.kind())}

    def mode(self) -> ServiceExecutionMode:
        return ServiceExecutionMode.BLOCK

    def initialize(
        self,
        ctx: Context,
        definitions: Definitions,
        envs: Env,
        options: dict[str, Any],
    ) -> None:
        return None

    async def run(self, ctx: Context, shutdown: asyncio.Event) -> None:
        async with self._lock:
            await self.svc.start(ctx)

    async def stop(self, ctx: Context) -> None:
        async with self._lock:
            await self.svc.stop(ctx)

    async def on_start(self, ctx: Context) -> None:
        async with self._lock:
            await self.svc.on_start(ctx)

    async def on_finish(self) -> None:
        async with self._lock:
            await self.svc.on_finish()