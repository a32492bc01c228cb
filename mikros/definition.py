"""Service definitions loaded from the 'service.toml' file."""

from __future__ import annotations

import copy
import dataclasses
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, ClassVar, Mapping, TypeVar

from mikros.errors import ModuleError

T = TypeVar("T")

_BUILTIN_KINDS = ("grpc", "http", "native", "script")
_PORT_PATTERN = re.compile(r"[+-]?[0-9]+")
_I32_MIN, _I32_MAX = -(2**31), 2**31 - 1


class DefinitionError(ModuleError):
    """Base for errors raised while loading service definitions."""


class InvalidDefinitions(DefinitionError):
    template = "invalid service definitions: {}"


class DefinitionFileNotFound(DefinitionError):
    template = "definition file not found: {}"


class CouldNotLoadFile(DefinitionError):
    template = "could not load definitions file: {}"


class MalformedToml(DefinitionError):
    template = "malformed toml definitions: {}"


class ServiceNotFound(DefinitionError):
    template = "service definitions not found: {}"


class EmptyServiceType(DefinitionError):
    template = "no service type was defined for service"


class ValidationError(ValueError):
    """A definitions value broke a validation rule."""


@dataclass(frozen=True)
class ServiceKind:
    """A kind of service: one of the built-in kinds or a custom name."""

    name: str

    GRPC: ClassVar[ServiceKind]
    HTTP: ClassVar[ServiceKind]
    NATIVE: ClassVar[ServiceKind]
    SCRIPT: ClassVar[ServiceKind]

    @classmethod
    def parse(cls, value: str) -> ServiceKind:
        return cls(value)

    @property
    def is_custom(self) -> bool:
        return self.name not in _BUILTIN_KINDS

    def __str__(self) -> str:
        return self.name


ServiceKind.GRPC = ServiceKind("grpc")
ServiceKind.HTTP = ServiceKind("http")
ServiceKind.NATIVE = ServiceKind("native")
ServiceKind.SCRIPT = ServiceKind("script")


@dataclass(frozen=True)
class ServiceType:
    """A service type entry: its kind and an optional port."""

    kind: ServiceKind
    port: int | None = None


def _parse_port(text: str) -> int:
    if not _PORT_PATTERN.fullmatch(text):
        raise ValueError("invalid port number")
    port = int(text)
    if not _I32_MIN <= port <= _I32_MAX:
        raise ValueError("invalid port number")
    return port


def parse_service_type(value: str) -> ServiceType:
    """Parse a service type in the format ``name`` or ``name:port``."""
    parts = value.split(":")
    port = _parse_port(parts[1]) if len(parts) > 1 else None
    return ServiceType(ServiceKind.parse(parts[0]), port)


@dataclass
class Log:
    """Logging settings; unset values fall back to defaults."""

    level: str | None = None
    local_timestamp: bool | None = None
    display_errors: bool | None = None

    def merge(self, other: Log) -> None:
        """Fill the unset values of this object from ``other``."""
        if self.level is None:
            self.level = other.level
        if self.local_timestamp is None:
            self.local_timestamp = other.local_timestamp
        if self.display_errors is None:
            self.display_errors = other.display_errors

    def with_defaults(self) -> Log:
        """A copy with every unset value taken from the defaults."""
        merged = dataclasses.replace(self)
        merged.merge(Log(level="info", local_timestamp=True, display_errors=True))
        return merged


@dataclass(frozen=True)
class Client:
    """Where a coupled service can be reached."""

    host: str
    port: int


@dataclass
class CustomServiceInfo:
    """Extra service types a service accepts besides the built-in ones."""

    types: list[str] | None = None


def validate_service_type(value: ServiceType, context: CustomServiceInfo) -> None:
    supported = [*_BUILTIN_KINDS, *(context.types or [])]
    if str(value.kind) not in supported:
        raise ValidationError("service type is not supported")


def validate_service_types(types: list[ServiceType], context: CustomServiceInfo) -> None:
    if not types:
        raise ValidationError("no service types defined")
    for service_type in types:
        validate_service_type(service_type, context)


def validate_service_info(info: Definitions, context: CustomServiceInfo) -> None:
    validate_service_types(info.types, context)


def _field(data: Mapping[str, Any], key: str, kind: type, required: bool = False) -> Any:
    value = data.get(key)
    if value is None:
        if required:
            raise MalformedToml(f"missing field `{key}`")
        return None
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise MalformedToml(f"invalid type for field `{key}`")
    return value


def _str_list(data: Mapping[str, Any], key: str, required: bool = False) -> list[str] | None:
    value = _field(data, key, list, required)
    if value is not None and not all(isinstance(item, str) for item in value):
        raise MalformedToml(f"invalid type for field `{key}`")
    return value


def _table(data: Mapping[str, Any], key: str) -> dict[str, Any] | None:
    return _field(data, key, dict)


def _decode(data: Any, factory: Callable[..., T] | None) -> T | Any | None:
    if data is None:
        return None
    data = copy.deepcopy(data)
    if factory is None:
        return data
    try:
        if isinstance(factory, type) and dataclasses.is_dataclass(factory) and isinstance(data, dict):
            names = {f.name for f in dataclasses.fields(factory) if f.init}
            return factory(**{k: v for k, v in data.items() if k in names})
        return factory(data)
    except (TypeError, ValueError, KeyError):
        return None


@dataclass
class Definitions:
    """The service information loaded from its definitions file."""

    name: str
    version: str
    language: str
    product: str
    types: list[ServiceType]
    envs: list[str] | None = None
    log_config: Log | None = None
    features: dict[str, Any] | None = None
    services: dict[str, Any] | None = None
    clients: dict[str, Client] | None = None
    service_settings: Any = None

    @classmethod
    def load(
        cls, filename: str | Path | None = None, custom_info: CustomServiceInfo | None = None
    ) -> Definitions:
        """Load and validate definitions from a file, 'service.toml' by default."""
        if filename is not None:
            path = Path(filename)
        else:
            try:
                path = Path.cwd() / "service.toml"
            except OSError as exc:
                raise DefinitionFileNotFound(str(exc)) from exc
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise CouldNotLoadFile(str(exc)) from exc
        return cls.from_toml(text, custom_info)

    @classmethod
    def from_toml(cls, text: str, custom_info: CustomServiceInfo | None = None) -> Definitions:
        """Parse and validate definitions from TOML text."""
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise MalformedToml(str(exc)) from exc
        info = cls.from_dict(data)
        info.validate(custom_info)
        return info

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Definitions:
        """Build definitions from an already parsed table, without validating them."""
        if not isinstance(data, Mapping):
            raise MalformedToml("expected a table")
        try:
            types = [parse_service_type(t) for t in _str_list(data, "types", required=True)]
        except ValueError as exc:
            raise MalformedToml(str(exc)) from exc

        log_config = None
        log_table = _table(data, "log")
        if log_table is not None:
            log_config = Log(
                level=_field(log_table, "level", str),
                local_timestamp=_field(log_table, "local_timestamp", bool),
                display_errors=_field(log_table, "display_errors", bool),
            )

        clients = None
        client_tables = _table(data, "clients")
        if client_tables is not None:
            clients = {}
            for name, table in client_tables.items():
                if not isinstance(table, dict):
                    raise MalformedToml(f"invalid type for client `{name}`")
                clients[name] = Client(
                    host=_field(table, "host", str, required=True),
                    port=_field(table, "port", int, required=True),
                )

        return cls(
            name=_field(data, "name", str, required=True),
            version=_field(data, "version", str, required=True),
            language=_field(data, "language", str, required=True),
            product=_field(data, "product", str, required=True),
            types=types,
            envs=_str_list(data, "envs"),
            log_config=log_config,
            features=_table(data, "features"),
            services=_table(data, "services"),
            clients=clients,
            service_settings=data.get("service"),
        )

    def validate(self, custom_info: CustomServiceInfo | None = None) -> None:
        context = custom_info if custom_info is not None else CustomServiceInfo()
        try:
            validate_service_info(self, context)
        except ValidationError as exc:
            raise InvalidDefinitions(str(exc)) from exc
        if not self.types:
            raise EmptyServiceType()

    def get_service_type(self, kind: ServiceKind | str) -> ServiceType:
        if not isinstance(kind, ServiceKind):
            kind = ServiceKind.parse(kind)
        for service_type in self.types:
            if service_type.kind == kind:
                return service_type
        raise ServiceNotFound(str(kind))

    def log(self) -> Log:
        """The logging settings with defaults applied."""
        return (self.log_config or Log()).with_defaults()

    def load_feature(self, feature: str, factory: Callable[..., T] | None = None) -> T | Any | None:
        """A feature's settings, decoded by ``factory``; None if absent or undecodable."""
        return _decode((self.features or {}).get(feature), factory)

    def load_service(
        self, kind: ServiceKind | str, factory: Callable[..., T] | None = None
    ) -> T | Any | None:
        """A service kind's settings, decoded by ``factory``; None if absent or undecodable."""
        return _decode((self.services or {}).get(str(kind)), factory)

    def client(self, name: str) -> Client | None:
        return (self.clients or {}).get(name)

    def custom_settings(self, factory: Callable[..., T] | None = None) -> T | Any | None:
        """The service's own settings, decoded by ``factory``."""
        return _decode(self.service_settings, factory)