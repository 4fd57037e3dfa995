"""Exception hierarchy for the exporter."""

from typing import Optional


class ExporterError(Exception):
    """Base class for all exporter errors."""


class ConfigError(ExporterError):
    """Fatal startup problem: bad configuration, credential files or handshake."""


class CollectionError(ExporterError):
    """A single RPC method failed during a collection pass."""

    def __init__(self, endpoint: str, message: str):
        super().__init__(f"{endpoint}: {message}")
        self.endpoint = endpoint
        self.message = message


class RpcTimeoutError(CollectionError):
    """The call did not complete within the per-call timeout."""


class RpcTransportError(CollectionError):
    """Connection, TLS or protocol failure below the RPC layer."""


class RpcStatusError(CollectionError):
    """The node answered with a non-success status."""

    def __init__(self, endpoint: str, message: str, status_code: Optional[int] = None):
        super().__init__(endpoint, message)
        self.status_code = status_code


class CredentialsRejectedError(RpcStatusError):
    """The node refused the macaroon or TLS identity."""


class ExpositionError(ExporterError):
    """The current snapshot could not be served."""


class RegistryNotReadyError(ExpositionError):
    """No snapshot has been published yet."""
