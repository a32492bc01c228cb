"""Environment settings of a running service."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping

from mikros.definition import Definitions
from mikros.errors import ModuleError


class EnvError(ModuleError):
    """Base for errors raised while loading environment settings."""


class SettingsError(EnvError):
    template = "{}"


class VariableNotSet(EnvError):
    template = "'{}' is not set"


def _int_setting(environ: Mapping[str, str], name: str, default: str) -> int:
    raw = environ.get(name, default)
    try:
        return int(raw)
    except ValueError as exc:
        raise SettingsError(f"invalid value for {name}: {raw!r}") from exc


@dataclass
class Env:
    """Settings read from environment variables."""

    deployment_env: str = "local"
    tracker_header_name: str = "X-Request-ID"
    coupled_namespace: str = "localhost"
    coupled_port: str = "7070"
    grpc_port: int = 7070
    http_port: int = 8080
    hide_response_fields: str | None = ""
    defined_envs: dict[str, str] = field(default_factory=dict, repr=False)

    @classmethod
    def load(cls, defs: Definitions, environ: Mapping[str, str] | None = None) -> Env:
        """Read the settings and every variable the definitions require."""
        if environ is None:
            environ = os.environ

        env = cls(
            deployment_env=environ.get("MIKROS_SERVICE_DEPLOY", "local"),
            tracker_header_name=environ.get("MIKROS_TRACKER_HEADER_NAME", "X-Request-ID"),
            coupled_namespace=environ.get("MIKROS_COUPLED_NAMESPACE", "localhost"),
            coupled_port=environ.get("MIKROS_COUPLED_PORT", "7070"),
            grpc_port=_int_setting(environ, "MIKROS_GRPC_PORT", "7070"),
            http_port=_int_setting(environ, "MIKROS_HTTP_PORT", "8080"),
            hide_response_fields=environ.get("MIKROS_HIDE_RESPONSE_FIELDS", ""),
        )

        for name in defs.envs or []:
            try:
                env.defined_envs[name] = environ[name]
            except KeyError as exc:
                raise VariableNotSet(name) from exc
        return env

    def get_defined_env(self, name: str) -> str | None:
        """The value of a variable named in the definitions file."""
        return self.defined_envs.get(name)

    def response_fields(self) -> list[str] | None:
        """The response fields to hide, split from the comma separated setting."""
        if self.hide_response_fields is None:
            return None
        return self.hide_response_fields.split(",")