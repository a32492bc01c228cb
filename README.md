# mikros

mikros is an asyncio framework for writing services whose shape is
described by a `service.toml` file. A service declares which kinds of
servers it runs — `grpc`, `http`, `native`, `script` or a custom kind of
its own — and mikros loads the definitions, reads the environment, sets up
JSON logging, initializes optional features and runs every server until it
is told to stop.

## The definitions file

`mikros.definition.Definitions.load()` reads `service.toml` from the
current directory unless another path is given. When a service is built,
its command line is parsed by `mikros.args.load_args`: `--config <path>`
chooses another file and `-h` / `--help` prints the usage and exits.

```toml
name = "my-service"
version = "v0.1.0"
language = "python"
product = "example"

# Server kinds to run, optionally with a port: "grpc:9090", "http", ...
types = ["native"]

# Environment variables that must be set; read them with ctx.env(name).
envs = ["CUSTOM_ENV"]

[log]
level = "info"            # debug, info, warning or error
local_timestamp = true
display_errors = true

[features.simple_api]
enabled = true
collections = ["users", "cards"]

[services.cronjob]
frequency = "weekly"

[clients.user]
host = "localhost"
port = 7070

[service]
direction = "forward"
```

`name`, `version`, `language`, `product` and `types` are required. Kinds
other than the four built-in ones are rejected unless a custom service of
that kind is registered with the builder. Missing `[log]` values default
to `info`, `true` and `true`.

Settings tables are read with `Definitions.load_feature(name, factory)`,
`Definitions.load_service(kind, factory)` and
`Definitions.custom_settings(factory)`; `factory` may be a dataclass (only
its fields are taken from the table) or any callable taking the table. They
return `None` when the table is absent or cannot be decoded.
`Definitions.client(name)` returns a `Client(host, port)` or `None`.

## Environment

`mikros.env.Env.load(defs)` reads these variables:

| Variable                      | Default        |
|-------------------------------|----------------|
| `MIKROS_SERVICE_DEPLOY`       | `local`        |
| `MIKROS_TRACKER_HEADER_NAME`  | `X-Request-ID` |
| `MIKROS_COUPLED_NAMESPACE`    | `localhost`    |
| `MIKROS_COUPLED_PORT`         | `7070`         |
| `MIKROS_GRPC_PORT`            | `7070`         |
| `MIKROS_HTTP_PORT`            | `8080`         |
| `MIKROS_HIDE_RESPONSE_FIELDS` | *(empty)*      |

Every variable listed in `envs` must be set, or `VariableNotSet` is raised.

`Context.client_connection_url(name)` returns `host:port` of a configured
client, or `<name>.<MIKROS_COUPLED_NAMESPACE>:<MIKROS_COUPLED_PORT>`
otherwise.

## A native service

```python
import asyncio

from mikros.builder import ServiceBuilder
from mikros.native import NativeService


class Hello(NativeService):
    async def start(self, ctx):
        ctx.logger.info(f"starting with {ctx.env('CUSTOM_ENV')}")

    async def stop(self, ctx):
        ctx.logger.info("stopping")


def main(argv=None):
    service = ServiceBuilder().native(Hello()).build(argv)
    asyncio.run(service.start())


if __name__ == "__main__":
    main()
```

Other kinds are registered the same way on `mikros.builder.ServiceBuilder`:

- `script(svc)` for a `mikros.script.ScriptService` (`run`, `cleanup`);
- `http(routes)` and its `http_with_lifecycle`, `http_with_state` and
  `http_with_lifecycle_and_state` variants, taking aiohttp route
  definitions. A `GET /health` endpoint answering an empty body is added
  unless `without_health_endpoint()` is called. Handlers reach a
  `mikros.http.ServiceState` (its `context` and `app_state`) through
  `request.app[mikros.http.STATE_KEY]`, and can read headers with
  `header_to_bool` and `header_to_string`;
- `grpc(register)` and `grpc_with_lifecycle(register, lifecycle)`, where
  `register` receives the `grpc.aio` server to add servicers to. Inside an
  RPC handler, `mikros.grpc_service.current_context()` returns the service
  context;
- `custom(custom_service)` for any `mikros.plugin.Service` implementation.

A kind can be registered only once. The port of an `http` or `grpc` server
comes from its `types` entry (`"http:8081"`) or from the environment; both
listen on `0.0.0.0`.

All registered servers must share one execution mode. Native, HTTP and gRPC
servers block: the service runs until it receives SIGINT. Script servers do
not: the service stops when their runs have returned. If a server fails,
every server is stopped and the error is raised from `Service.start()`.

Lifecycle hooks come from `mikros.plugin.Lifecycle` (`on_start`,
`on_finish`). Features implement `mikros.plugin.Feature`, are added with
`ServiceBuilder.with_features(...)`, and are used from a service through
`mikros.context.execute_on(ctx, name, func)` or `await ctx.feature(name)`.

## Logging

Each service logs one JSON object per line to standard output, with
`timestamp`, `level` (`DEBUG`, `INFO`, `WARN`, `ERROR`), `message`, the
fields `svc.name`, `svc.version`, `svc.product` and `svc.language`, and the
fields passed to `debugf` / `infof` / `warningf` / `errorf`. A
`mikros.logger.Logger` can also be built directly with `LoggerBuilder`.

## Errors

Handlers report failures with `mikros.errors.ServiceError`:

```python
from mikros.errors import ServiceError

raise ServiceError.not_found(ctx).with_code(42)
```

Each constructor (`internal`, `not_found`, `invalid_arguments`,
`precondition_failed`, `rpc`, `custom`, `permission_denied`) fixes the
error kind; `http_status()` maps it to 404, 400, 412, 403 or 500, and
`with_attributes` attaches extra data. A `ServiceError` raised in an HTTP
handler is answered with that status and the error's JSON.

`to_status_message()` logs the error (when `display_errors` is on) and
serializes it without the fields named in `MIKROS_HIDE_RESPONSE_FIELDS`
(`message`, `service_name`, `attributes`, `destination`);
`ServiceError.from_json` reads such a message back.

## What it does not do

- There is no command of its own: a service is a program that builds and
  starts a `Service`, as above.
- gRPC handlers are not translated: a `ServiceError` raised in one is not
  turned into a gRPC status automatically; use `to_status_message()` to
  build the status details yourself.
- HTTP error responses carry the full error; hidden fields are only left
  out by `to_status_message()`.