import pytest

from mikros.builder import ServiceBuilder
from mikros.definition import ServiceKind
from mikros.errors import ServiceError
from mikros.grpc_service import Grpc
from mikros.http_service import Http
from mikros.native import Native, NativeService
from mikros.plugin import Lifecycle, ServiceExecutionMode
from mikros.plugin import Service as ServicePlugin
from mikros.script import ScriptService

DEFINITIONS = """
name = "my-service"
version = "v0.1.0"
language = "python"
product = "example"
types = [{types}]
{extra}
"""


def write_definitions(tmp_path, types, extra=""):
    path = tmp_path / "service.toml"
    path.write_text(
        DEFINITIONS.format(types=", ".join(f'"{t}"' for t in types), extra=extra)
    )
    return ["svc", "--config", str(path)]


class Quiet(NativeService):
    async def start(self, ctx):
        return None

    async def stop(self, ctx):
        return None


class QuietScript(ScriptService):
    async def run(self, ctx):
        return None

    async def cleanup(self, ctx):
        return None


class Cronjob(ServicePlugin):
    def __init__(self):
        self.settings = None
        self.ran = False

    def kind(self):
        return ServiceKind("cronjob")

    def info(self):
        return {}

    def mode(self):
        return ServiceExecutionMode.NON_BLOCK

    def initialize(self, ctx, definitions, envs, options):
        self.settings = definitions.load_service(self.kind())

    async def run(self, ctx, shutdown):
        self.ran = True

    async def stop(self, ctx):
        return None


def test_native_registered_once():
    builder = ServiceBuilder().native(Quiet())
    assert isinstance(builder.servers["native"], Native)
    with pytest.raises(ServiceError) as info:
        builder.native(Quiet())
    assert info.value.kind == "InternalError"
    assert info.value.message == "service 'native' already initialized"


def test_script_registered_once():
    builder = ServiceBuilder().script(QuietScript())
    with pytest.raises(ServiceError) as info:
        builder.script(QuietScript())
    assert info.value.message == "service 'script' already initialized"


def test_http_variants_share_kind():
    state = object()
    builder = ServiceBuilder().http_with_state([], state)
    server = builder.servers["http"]
    assert isinstance(server, Http)
    assert server.app_state is state
    with pytest.raises(ServiceError):
        builder.http([])


def test_http_with_lifecycle_and_state():
    lifecycle = Lifecycle()
    state = {"value": 0}
    builder = ServiceBuilder().http_with_lifecycle_and_state([], lifecycle, state)
    server = builder.servers["http"]
    assert server.lifecycle is lifecycle
    assert server.app_state is state


def test_grpc_with_lifecycle():
    lifecycle = Lifecycle()

    def register(server):
        return None

    builder = ServiceBuilder().grpc_with_lifecycle(register, lifecycle)
    server = builder.servers["grpc"]
    assert isinstance(server, Grpc)
    assert server.lifecycle is lifecycle
    assert server.register is register


def test_without_health_endpoint_option():
    builder = ServiceBuilder().without_health_endpoint()
    assert builder.service_options == {"without_health_endpoint": True}


def test_with_features_accumulates():
    first, second = object(), object()
    builder = ServiceBuilder().with_features([first]).with_features([second])
    assert builder.features == [first, second]


def test_custom_records_service_type():
    builder = ServiceBuilder().custom(Cronjob())
    assert builder.custom_service_types == ["cronjob"]
    with pytest.raises(ServiceError) as info:
        builder.custom(Cronjob())
    assert info.value.message == "service 'cronjob' already initialized"


@pytest.mark.asyncio
async def test_custom_service_runs_with_its_settings(tmp_path):
    cronjob = Cronjob()
    argv = write_definitions(
        tmp_path, ["cronjob"], '[services.cronjob]\nfrequency = "weekly"\n'
    )
    svc = ServiceBuilder().custom(cronjob).build(argv)
    assert svc.definitions.types[0].kind == ServiceKind("cronjob")

    await svc.start()
    assert cronjob.settings == {"frequency": "weekly"}
    assert cronjob.ran is True


def test_unsupported_type_without_custom_service(tmp_path):
    argv = write_definitions(tmp_path, ["cronjob"])
    with pytest.raises(ServiceError) as info:
        ServiceBuilder().script(QuietScript()).build(argv)
    assert info.value.message == "invalid service definitions: service type is not supported"


def test_missing_definitions_file(tmp_path):
    argv = ["svc", "--config", str(tmp_path / "missing.toml")]
    with pytest.raises(ServiceError) as info:
        ServiceBuilder().native(Quiet()).build(argv)
    assert info.value.message.startswith("could not load definitions file: ")


def test_required_env_not_set(tmp_path, monkeypatch):
    monkeypatch.delenv("MIKROS_TEST_REQUIRED", raising=False)
    argv = write_definitions(tmp_path, ["native"], 'envs = ["MIKROS_TEST_REQUIRED"]')
    with pytest.raises(ServiceError) as info:
        ServiceBuilder().native(Quiet()).build(argv)
    assert info.value.message == "'MIKROS_TEST_REQUIRED' is not set"


def test_required_env_available_in_context(tmp_path, monkeypatch):
    monkeypatch.setenv("MIKROS_TEST_REQUIRED", "present")
    argv = write_definitions(tmp_path, ["native"], 'envs = ["MIKROS_TEST_REQUIRED"]')
    svc = ServiceBuilder().native(Quiet()).build(argv)
    assert svc.context.env("MIKROS_TEST_REQUIRED") == "present"
    assert svc.context.service_name() == "my-service"


def test_help_exits_with_usage(capsys):
    with pytest.raises(SystemExit) as info:
        ServiceBuilder().native(Quiet()).build(["svc", "--help"])
    assert info.value.code == 0
    assert capsys.readouterr().out.startswith("Usage: svc [OPTIONS]")