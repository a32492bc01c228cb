"""An asyncio framework for gRPC, HTTP, native, script and custom services described by a service.toml file."""

__version__ = "0.1.0"