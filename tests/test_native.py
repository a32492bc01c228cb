import asyncio
import io

import pytest

from mikros.context import Context
from mikros.definition import Definitions, ServiceKind
from mikros.env import Env
from mikros.errors import ServiceError
from mikros.logger import LoggerBuilder
from mikros.native import Native, NativeService
from mikros.plugin import ServiceExecutionMode

TOML = """
name = "my-service"
version = "v0.1.0"
language = "python"
product = "examples"
types = ["native"]
"""


def _context():
    defs = Definitions.from_toml(TOML)
    envs = Env.load(defs, environ={})
    logger = LoggerBuilder().build(stream=io.StringIO())
    return Context(logger=logger, definitions=defs, envs=envs)


class Recorder(NativeService):
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    async def start(self, ctx):
        self.calls.append(("start", ctx.service_name()))
        if self.fail:
            raise ServiceError.internal(ctx, "start failed")

    async def stop(self, ctx):
        self.calls.append(("stop", ctx.service_name()))

    async def on_start(self, ctx):
        self.calls.append(("on_start", ctx.service_name()))

    async def on_finish(self):
        self.calls.append(("on_finish", None))


class Plain(NativeService):
    async def start(self, ctx):
        return None

    async def stop(self, ctx):
        return None


def test_native_description():
    svc = Native(Recorder())
    assert svc.kind() == ServiceKind.NATIVE
    assert svc.info() == {"kind": "native"}
    assert svc.mode() is ServiceExecutionMode.BLOCK


def test_initialize_stores_nothing():
    ctx = _context()
    recorder = Recorder()
    svc = Native(recorder)
    svc.initialize(ctx, ctx.definitions, ctx.envs, {})
    assert recorder.calls == []


@pytest.mark.asyncio
async def test_run_and_stop_delegate():
    ctx = _context()
    recorder = Recorder()
    svc = Native(recorder)
    await svc.run(ctx, asyncio.Event())
    await svc.stop(ctx)
    assert recorder.calls == [("start", "my-service"), ("stop", "my-service")]


@pytest.mark.asyncio
async def test_lifecycle_delegates():
    ctx = _context()
    recorder = Recorder()
    svc = Native(recorder)
    await svc.on_start(ctx)
    await svc.on_finish()
    assert recorder.calls == [("on_start", "my-service"), ("on_finish", None)]


@pytest.mark.asyncio
async def test_default_lifecycle_does_nothing():
    ctx = _context()
    svc = Native(Plain())
    assert await svc.on_start(ctx) is None
    assert await svc.on_finish() is None


@pytest.mark.asyncio
async def test_run_propagates_errors():
    ctx = _context()
    svc = Native(Recorder(fail=True))
    with pytest.raises(ServiceError) as info:
        await svc.run(ctx, asyncio.Event())
    assert info.value.message == "start failed"