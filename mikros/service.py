"""The running service: loads its settings, starts its servers and stops them."""

from __future__ import annotations

import asyncio
import signal
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator, Sequence

from mikros.args import load_args
from mikros.context import (
    Context,
    EmptyServiceFound,
    ServiceImplementationNotFound,
    ServiceKindUninitialized,
    UnsupportedServicesExecutionMode,
)
from mikros.definition import CustomServiceInfo, Definitions, ServiceKind
from mikros.env import Env
from mikros.errors import ModuleError, ServiceError
from mikros.logger import Level, Logger, LoggerBuilder
from mikros.plugin import Service as ServicePlugin
from mikros.plugin import ServiceExecutionMode

if TYPE_CHECKING:
    from mikros.builder import ServiceBuilder


@contextmanager
def _as_service_error() -> Iterator[None]:
    try:
        yield
    except ModuleError as exc:
        raise ServiceError.from_error(exc) from exc


def _load_definitions(builder: ServiceBuilder, argv: Sequence[str] | None) -> Definitions:
    args = load_args(argv)
    custom_info = None
    if builder.custom_service_types:
        custom_info = CustomServiceInfo(types=list(builder.custom_service_types))
    return Definitions.load(args.config_path, custom_info)


def _start_logger(defs: Definitions) -> Logger:
    log = defs.log()
    try:
        level = Level.parse(log.level)
    except ValueError:
        level = Level.INFO
    return (
        LoggerBuilder()
        .with_level(level)
        .with_local_timestamp(bool(log.local_timestamp))
        .with_field("svc.name", defs.name)
        .with_field("svc.version", defs.version)
        .with_field("svc.product", defs.product)
        .with_field("svc.language", defs.language)
        .build()
    )


async def _wait_interrupt() -> None:
    loop = asyncio.get_running_loop()
    interrupted = asyncio.Event()
    try:
        loop.add_signal_handler(signal.SIGINT, interrupted.set)
    except (NotImplementedError, RuntimeError):
        previous = signal.signal(
            signal.SIGINT, lambda *_: loop.call_soon_threadsafe(interrupted.set)
        )
        try:
            await interrupted.wait()
        finally:
            signal.signal(signal.SIGINT, previous)
        return
    try:
        await interrupted.wait()
    finally:
        loop.remove_signal_handler(signal.SIGINT)


class Service:
    """A service built from a ServiceBuilder, ready to be started."""

    def __init__(self, builder: ServiceBuilder, argv: Sequence[str] | None = None) -> None:
        self.definitions = _load_definitions(builder, argv)
        self.logger = _start_logger(self.definitions)
        self.envs = Env.load(self.definitions)
        self.context = Context(self.logger, self.definitions, self.envs, list(builder.features))
        self.servers: dict[str, ServicePlugin] = dict(builder.servers)
        self.service_options: dict[str, Any] = dict(builder.service_options)
        self._tasks: list[asyncio.Task[None]] = []
        self._shutdown = asyncio.Event()

    async def start(self) -> None:
        """Run the service until it finishes, is interrupted or fails."""
        self.logger.info("service starting")
        with _as_service_error():
            self.validate_definitions()
            self.logger.info("starting features")
            await self.context.initialize_features()
            await self._initialize_service_internals()
        self._print_service_resources()
        await self._run()

    def validate_definitions(self) -> None:
        """Check that the registered servers match the defined service types."""
        if not self.servers:
            raise EmptyServiceFound()
        modes = [server.mode() for server in self.servers.values()]
        if any(mode != modes[0] for mode in modes):
            raise UnsupportedServicesExecutionMode()
        for service_type in self.definitions.types:
            if str(service_type.kind) not in self.servers:
                raise ServiceKindUninitialized(service_type.kind)

    def _get_server(self, kind: ServiceKind) -> ServicePlugin:
        try:
            return self.servers[str(kind)]
        except KeyError as exc:
            raise ServiceImplementationNotFound(str(kind)) from exc

    async def _initialize_service_internals(self) -> None:
        for service_type in self.definitions.types:
            server = self._get_server(service_type.kind)
            server.initialize(
                self.context, self.definitions, self.envs, dict(self.service_options)
            )
            await server.on_start(self.context)

    def _print_service_resources(self) -> None:
        info = {feature.name(): feature.info() for feature in self.context.features}
        self.logger.infof("service resources", info)

    async def _service_task(
        self,
        server: ServicePlugin,
        errors: asyncio.Queue[Exception],
        finished_run: asyncio.Event,
    ) -> None:
        fields = {"task_name": str(server.kind())}
        self.logger.debugf("starting service task", fields)
        try:
            await server.run(self.context, self._shutdown)
        except Exception as exc:
            errors.put_nowait(exc)
            return
        finished_run.set()
        await self._shutdown.wait()
        self.logger.debugf("finishing service task", fields)
        self.logger.debugf("service task finished", fields)

    async def _wait_finishing_signal(self, finished_runs: list[asyncio.Event]) -> None:
        mode = next(iter(self.servers.values())).mode()
        if mode is ServiceExecutionMode.BLOCK:
            await _wait_interrupt()
        else:
            await asyncio.gather(*(event.wait() for event in finished_runs))

    async def _run(self) -> None:
        self._shutdown = asyncio.Event()
        errors: asyncio.Queue[Exception] = asyncio.Queue()
        finished_runs: list[asyncio.Event] = []

        for service_type in self.definitions.types:
            with _as_service_error():
                server = self._get_server(service_type.kind)
            self.logger.infof("service is running", server.info())
            finished_run = asyncio.Event()
            finished_runs.append(finished_run)
            self._tasks.append(
                asyncio.create_task(self._service_task(server, errors, finished_run))
            )

        error_wait = asyncio.create_task(errors.get())
        finish_wait = asyncio.create_task(self._wait_finishing_signal(finished_runs))
        done, pending = await asyncio.wait(
            {error_wait, finish_wait}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        if error_wait in done:
            error = error_wait.result()
            self.logger.error(str(error))
            await self.stop_service_tasks()
            raise error

        await self.stop_service_tasks()

    async def stop_service_tasks(self) -> None:
        """Stop every server, wait for its task and release every resource."""
        with _as_service_error():
            for service_type in self.definitions.types:
                await self._get_server(service_type.kind).stop(self.context)

            self._shutdown.set()
            self.logger.debug("sending shutdown signal for service tasks")

            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks.clear()

            for service_type in self.definitions.types:
                await self._get_server(service_type.kind).on_finish()

        await self.context.cleanup_features()
        self.logger.info("service stopped")