"""Error types shared by services and the framework itself."""

from __future__ import annotations

import copy
import json
from enum import Enum
from typing import Any, ClassVar


class ErrorKind(Enum):
    """The kinds of error a service can report, valued by their wire name."""

    INTERNAL = "InternalError"
    NOT_FOUND = "NotFoundError"
    INVALID_ARGUMENTS = "ValidationError"
    PRECONDITION_FAILED = "ConditionError"
    RPC = "RPCError"
    CUSTOM = "CustomError"
    PERMISSION_DENIED = "PermissionError"


_FIXED_DESCRIPTIONS = {
    ErrorKind.NOT_FOUND: "not found",
    ErrorKind.INVALID_ARGUMENTS: "invalid arguments",
    ErrorKind.PERMISSION_DENIED: "no permission to access the service",
}

_HTTP_STATUS = {
    ErrorKind.NOT_FOUND.value: 404,
    ErrorKind.INVALID_ARGUMENTS.value: 400,
    ErrorKind.PRECONDITION_FAILED.value: 412,
    ErrorKind.PERMISSION_DENIED.value: 403,
}

_HIDEABLE_FIELDS = ("message", "service_name", "attributes", "destination")
_SERIALIZE_FAILURE = "could not serialize error message"


class Error(Exception):
    """An internal framework error of a given kind."""

    def __init__(self, kind: ErrorKind, message: str | None = None) -> None:
        super().__init__(kind, message)
        self.kind = kind
        self.message = message

    def description(self) -> str:
        fixed = _FIXED_DESCRIPTIONS.get(self.kind)
        if fixed is not None:
            return fixed
        return self.message or ""

    def __str__(self) -> str:
        return self.description()


class ModuleError(Exception):
    """Base for module-specific errors, all reported as internal errors.

    Subclasses set ``template``; the exception arguments fill its ``{}``
    placeholders in order.
    """

    template: ClassVar[str] = ""

    def description(self) -> str:
        return self.template.format(*self.args)

    def to_error(self) -> Error:
        return Error(ErrorKind.INTERNAL, self.description())

    def __str__(self) -> str:
        return self.description()


def merge_json(a: Any, b: Any) -> Any:
    """Merge ``b`` into ``a``: objects merge key by key, anything else is replaced."""
    if isinstance(a, dict) and isinstance(b, dict):
        merged = dict(a)
        for key, value in b.items():
            merged[key] = merge_json(merged.get(key), value)
        return merged
    return copy.deepcopy(b)


def _error_logger(ctx: Any) -> Any:
    if ctx.definitions.log().display_errors:
        return ctx.logger
    return None


class ServiceError(Exception):
    """The error a service returns to its callers, over RPC or HTTP."""

    def __init__(
        self,
        kind: str,
        message: str | None = None,
        *,
        code: int = 0,
        service_name: str | None = None,
        attributes: Any = None,
        destination: str | None = None,
        logger: Any = None,
        concealable_attributes: list[str] | None = None,
    ) -> None:
        super().__init__(message if message is not None else kind)
        self.code = code
        self.kind = kind
        self.message = message
        self.service_name = service_name
        self.attributes = attributes
        self.destination = destination
        self.logger = logger
        self.concealable_attributes = concealable_attributes

    @classmethod
    def _new(cls, ctx: Any, error: Error) -> ServiceError:
        fields = ctx.envs.response_fields()
        return cls(
            error.kind.value,
            error.description(),
            service_name=ctx.service_name(),
            logger=_error_logger(ctx),
            concealable_attributes=list(fields) if fields is not None else None,
        )

    @classmethod
    def internal(cls, ctx: Any, msg: str) -> ServiceError:
        """An unexpected internal service behaviour."""
        return cls._new(ctx, Error(ErrorKind.INTERNAL, msg))

    @classmethod
    def not_found(cls, ctx: Any) -> ServiceError:
        """Some data or resource was not found."""
        return cls._new(ctx, Error(ErrorKind.NOT_FOUND))

    @classmethod
    def invalid_arguments(cls, ctx: Any, details: Any) -> ServiceError:
        """An argument did not follow its validation rules."""
        return cls._new(ctx, Error(ErrorKind.INVALID_ARGUMENTS))

    @classmethod
    def precondition_failed(cls, ctx: Any, msg: str) -> ServiceError:
        """An internal condition was not satisfied."""
        return cls._new(ctx, Error(ErrorKind.PRECONDITION_FAILED, msg))

    @classmethod
    def rpc(cls, ctx: Any, destination: str, msg: str) -> ServiceError:
        """A call to another service failed."""
        error = cls._new(ctx, Error(ErrorKind.RPC, msg))
        error.destination = destination
        return error

    @classmethod
    def custom(cls, ctx: Any, msg: str) -> ServiceError:
        """A service-defined error."""
        return cls._new(ctx, Error(ErrorKind.CUSTOM, msg))

    @classmethod
    def permission_denied(cls, ctx: Any) -> ServiceError:
        """A client accessed a resource without permission."""
        return cls._new(ctx, Error(ErrorKind.PERMISSION_DENIED))

    @classmethod
    def from_error(cls, error: Error | ModuleError, ctx: Any = None) -> ServiceError:
        """Build a service error from an internal error, with or without a context."""
        if isinstance(error, ModuleError):
            error = error.to_error()
        if ctx is None:
            return cls(error.kind.value, error.description())
        return cls._new(ctx, error)

    def with_code(self, code: int) -> ServiceError:
        self.code = code
        return self

    def with_attributes(self, attributes: Any) -> ServiceError:
        self.attributes = attributes
        return self

    def hide_field(self, field: str) -> ServiceError:
        """Mark a field to be left out when the error is sent to a caller."""
        self.concealable_attributes = [*(self.concealable_attributes or []), field]
        return self

    def to_json(self) -> dict[str, Any]:
        """The serializable form of the error; unset optional fields are omitted."""
        data: dict[str, Any] = {"code": self.code, "kind": self.kind}
        optional = {
            "message": self.message,
            "service_name": self.service_name,
            "attributes": self.attributes,
            "destination": self.destination,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        return data

    @classmethod
    def from_json(cls, data: str | bytes | dict[str, Any]) -> ServiceError:
        """Rebuild an error from its serialized form."""
        try:
            payload = json.loads(data) if isinstance(data, (str, bytes)) else data
            return cls(
                payload["kind"],
                payload.get("message"),
                code=int(payload["code"]),
                service_name=payload.get("service_name"),
                attributes=payload.get("attributes"),
                destination=payload.get("destination"),
            )
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"malformed service error: {exc}") from exc

    def _log(self) -> None:
        if self.logger is None:
            return
        fields: Any = {"error.code": self.code, "error.kind": self.kind}
        if self.attributes is not None:
            fields = merge_json(self.attributes, fields)
        self.logger.errorf(self.message or "", fields)

    def to_status_message(self) -> str:
        """Log the error if configured and serialize it without the concealed fields."""
        self._log()
        payload = self.to_json()
        for field in self.concealable_attributes or []:
            name = field.lower()
            if name in _HIDEABLE_FIELDS:
                payload.pop(name, None)
        return self._dump(payload)

    def http_status(self) -> int:
        """The HTTP status code matching the error kind."""
        return _HTTP_STATUS.get(self.kind, 500)

    @staticmethod
    def _dump(payload: dict[str, Any]) -> str:
        try:
            return json.dumps(payload, separators=(",", ":"))
        except (TypeError, ValueError):
            return _SERIALIZE_FAILURE

    def __str__(self) -> str:
        return self._dump(self.to_json())

    def __repr__(self) -> str:
        return str(self)