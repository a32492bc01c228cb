"""Script services: run once and finish by themselves."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any

from mikros.context import Context
from mikros.definition import Definitions, ServiceKind
from mikros.env import Env
from mikros.plugin import Lifecycle, Service, ServiceExecutionMode


class ScriptService(Lifecycle, ABC):
    """The API a script service implements."""

    @abstractmethod
    async def run(self, ctx: Context) -> None:
        """Execute the script."""

    @abstractmethod
    async def cleanup(self, ctx: Context) -> None:
        """Release what the script used."""


class Script(Service):
    """Runs a script service implementation."""

    def __init__(self, svc: ScriptService) -> None:
        self.svc = svc
        self._lock = asyncio.Lock()

    def kind(self) -> ServiceKind:
        return ServiceKind.SCRIPT

    def info(self) -> dict[str, Any]:
        return {"kind": str(self.kind())}

    def mode(self) -> ServiceExecutionMode:
        return ServiceExecutionMode.NON_BLOCK

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
            await self.svc.run(ctx)

    async def stop(self, ctx: Context) -> None:
        async with self._lock:
            await self.svc.cleanup(ctx)

    async def on_start(self, ctx: Context) -> None:
        async with self._lock:
            await self.svc.on_start(ctx)

    async def on_finish(self) -> None:
        async with self._lock:
            await self.svc.on_finish()