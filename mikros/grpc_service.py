"""The gRPC service kind, served with grpc.aio."""

from __future__ import annotations

import asyncio
import inspect
from contextvars import ContextVar
from typing import Any, Awaitable, Callable

import grpc
from grpc import aio

from mikros.context import Context
from mikros.definition import DefinitionError, Definitions, ServiceKind
from mikros.env import Env
from mikros.errors import ModuleError, ServiceError
from mikros.plugin import Lifecycle, Service, ServiceExecutionMode

_LISTEN_HOST = "0.0.0.0"
_SHUTDOWN_GRACE = 5.0

_current: ContextVar[Context] = ContextVar("mikros_grpc_context")


class TransportInitFailure(ModuleError):
    template = "could not initialize transport layer: {}"


def current_context() -> Context:
    """The service context of the RPC being handled."""
    try:
        return _current.get()
    except LookupError as exc:
        raise LookupError("no service context is bound to the current request") from exc


def _bind_unary(behavior: Callable[..., Any], ctx: Context) -> Callable[..., Awaitable[Any]]:
    async def wrapped(request: Any, context: Any) -> Any:
        token = _current.set(ctx)
        try:
            result = behavior(request, context)
            if inspect.isawaitable(result):
                result = await result
            return result
        finally:
            _current.reset(token)

    return wrapped


def _bind_streaming(behavior: Callable[..., Any], ctx: Context) -> Callable[..., Any]:
    async def wrapped(request: Any, context: Any) -> Any:
        _current.set(ctx)
        result = behavior(request, context)
        if hasattr(result, "__aiter__"):
            async for item in result:
                yield item
        elif inspect.isawaitable(result):
            await result
        elif result is not None:
            for item in result:
                yield item

    return wrapped


def _bind_context(handler: grpc.RpcMethodHandler, ctx: Context) -> grpc.RpcMethodHandler:
    serializers = {
        "request_deserializer": handler.request_deserializer,
        "response_serializer": handler.response_serializer,
    }
    if handler.unary_unary is not None:
        return grpc.unary_unary_rpc_method_handler(
            _bind_unary(handler.unary_unary, ctx), **serializers
        )
    if handler.unary_stream is not None:
        return grpc.unary_stream_rpc_method_handler(
            _bind_streaming(handler.unary_stream, ctx), **serializers
        )
    if handler.stream_unary is not None:
        return grpc.stream_unary_rpc_method_handler(
            _bind_unary(handler.stream_unary, ctx), **serializers
        )
    if handler.stream_stream is not None:
        return grpc.stream_stream_rpc_method_handler(
            _bind_streaming(handler.stream_stream, ctx), **serializers
        )
    return handler


class ContextInterceptor(aio.ServerInterceptor):
    """Makes the service context available to every RPC handler."""

    def __init__(self, ctx: Context) -> None:
        self.ctx = ctx

    async def intercept_service(
        self,
        continuation: Callable[[grpc.HandlerCallDetails], Awaitable[grpc.RpcMethodHandler]],
        handler_call_details: grpc.HandlerCallDetails,
    ) -> grpc.RpcMethodHandler | None:
        handler = await continuation(handler_call_details)
        if handler is None:
            return None
        return _bind_context(handler, self.ctx)


class Grpc(Service):
    """Serves gRPC servicers added by ``register``."""

    def __init__(
        self,
        register: Callable[[aio.Server], Any],
        lifecycle: Lifecycle | None = None,
    ) -> None:
        self.register = register
        self.lifecycle = lifecycle
        self.port = 0

    def kind(self) -> ServiceKind:
        return ServiceKind.GRPC

    def info(self) -> dict[str, Any]:
        return {"svc.port": self.port, "svc.mode": str(ServiceKind.GRPC)}

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
            service_type = definitions.get_service_type(ServiceKind.GRPC)
        except DefinitionError as exc:
            raise ServiceError.from_error(exc, ctx) from exc
        self.port = service_type.port if service_type.port is not None else envs.grpc_port

    async def run(self, ctx: Context, shutdown: asyncio.Event) -> None:
        server = aio.server(interceptors=[ContextInterceptor(ctx)])
        self.register(server)
        try:
            bound = server.add_insecure_port(f"{_LISTEN_HOST}:{self.port}")
            if bound == 0:
                raise RuntimeError(f"failed to bind to port {self.port}")
            await server.start()
        except (RuntimeError, OSError) as exc:
            failure = TransportInitFailure(str(exc))
            raise ServiceError.internal(ctx, failure.description()) from exc

        try:
            await shutdown.wait()
        finally:
            await server.stop(_SHUTDOWN_GRACE)

    async def stop(self, ctx: Context) -> None:
        return None

    async def on_start(self, ctx: Context) -> None:
        if self.lifecycle is not None:
            await self.lifecycle.on_start(ctx)

    async def on_finish(self) -> None:
        if self.lifecycle is not None:
            await self.lifecycle.on_finish()