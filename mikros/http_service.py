"""The HTTP service kind, served with aiohttp."""

from __future__ import annotations

import asyncio
from typing import Any, Iterable

from aiohttp import web

from mikros.context import Context
from mikros.definition import DefinitionError, Definitions, ServiceKind
from mikros.env import Env
from mikros.errors import ModuleError, ServiceError
from mikros.http import STATE_KEY, ServiceState
from mikros.plugin import Lifecycle, Service, ServiceExecutionMode

_LISTEN_HOST = "0.0.0.0"


class HttpInitFailure(ModuleError):
    template = "could not initialize HTTP server: {}"


class HttpShutdownFailure(ModuleError):
    template = "could not shutdown HTTP server: {}"


async def health_handler(request: web.Request) -> web.Response:
    """The default /health endpoint of every HTTP service."""
    return web.Response(text="")


@web.middleware
async def _service_errors(request: web.Request, handler: Any) -> web.StreamResponse:
    try:
        return await handler(request)
    except ServiceError as exc:
        return web.Response(status=exc.http_status(), text=str(exc))


class Http(Service):
    """Serves a set of aiohttp routes."""

    def __init__(
        self,
        routes: Iterable[web.AbstractRouteDef],
        lifecycle: Lifecycle | None = None,
        app_state: Any = None,
    ) -> None:
        self.routes = list(routes)
        self.lifecycle = lifecycle
        self.app_state = app_state
        self.port = 0
        self.internal_health_handler = True

    def kind(self) -> ServiceKind:
        return ServiceKind.HTTP

    def info(self) -> dict[str, Any]:
        return {"svc.port": self.port, "svc.mode": str(ServiceKind.HTTP)}

    def mode(self) -> ServiceExecutionMode:
        return ServiceExecutionMode.BLOCK

    def initialize(
        self,
        ctx: Context,
        definitions: Definitions,
        envs: Env,
        options: dict[str, Any],
    ) -> None:
        try:
            service_type = definitions.get_service_type(ServiceKind.HTTP)
        except DefinitionError as exc:
            raise ServiceError.from_error(exc, ctx) from exc
        self.port = service_type.port if service_type.port is not None else envs.http_port

        if "without_health_endpoint" in options:
            disabled = options["without_health_endpoint"]
            self.internal_health_handler = not (disabled if isinstance(disabled, bool) else False)

    def build_app(self, ctx: Context) -> web.Application:
        """The application serving the health endpoint and the service routes."""
        app = web.Application(middlewares=[_service_errors])
        app[STATE_KEY] = ServiceState(ctx, self.app_state)
        if self.internal_health_handler:
            app.router.add_get("/health", health_handler)
        app.add_routes(self.routes)
        return app

    async def run(self, ctx: Context, shutdown: asyncio.Event) -> None:
        runner = web.AppRunner(self.build_app(ctx))
        await runner.setup()
        try:
            await web.TCPSite(runner, _LISTEN_HOST, self.port).start()
        except (OSError, OverflowError) as exc:
            await runner.cleanup()
            raise ServiceError.from_error(HttpInitFailure(str(exc)), ctx) from exc

        await shutdown.wait()

        try:
            await runner.cleanup()
        except (OSError, RuntimeError) as exc:
            raise ServiceError.from_error(HttpShutdownFailure(str(exc)), ctx) from exc

    async def stop(self, ctx: Context) -> None:
        return None

    async def on_start(self, ctx: Context) -> None:
        if self.lifecycle is not None:
            await self.lifecycle.on_start(ctx)

    async def on_finish(self) -> None:
        if self.lifecycle is not None:
            await self.lifecycle.on_finish()