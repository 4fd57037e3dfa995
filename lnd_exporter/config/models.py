"""Pydantic configuration models for the exporter."""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Tuple

from ..collectors.mappings import DEFAULT_ENDPOINTS, METHOD_TABLE


class LndConfig(BaseModel):
    """Connection to the LND node."""
    endpoint: str = "https://localhost:8080"
    tls_cert_path: str = "~/.lnd/tls.cert"
    macaroon_path: str = "~/.lnd/data/chain/bitcoin/mainnet/readonly.macaroon"

    @field_validator('endpoint')
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Validate URL format."""
        if not v.startswith('https://'):
            raise ValueError('LND endpoint must start with https://')
        return v.rstrip('/')


class ExporterConfig(BaseModel):
    """HTTP scrape endpoint."""
    listen_addr: str = "127.0.0.1:29090"

    @field_validator('listen_addr')
    @classmethod
    def validate_listen_addr(cls, v: str) -> str:
        """Require host:port with a usable port."""
        host, sep, port = v.rpartition(':')
        if not sep or not host:
            raise ValueError('listen_addr must look like host:port')
        if not port.isdigit() or not 0 < int(port) < 65536:
            raise ValueError(f'Invalid port in listen_addr: {port!r}')
        return v

    @property
    def host_port(self) -> Tuple[str, int]:
        host, _, port = self.listen_addr.rpartition(':')
        # Bracketed IPv6 literal, e.g. [::1]:29090
        return host.strip('[]'), int(port)


class CollectionConfig(BaseModel):
    """Polling cadence and the set of polled methods."""
    poll_interval_seconds: float = Field(default=15.0, gt=0)
    rpc_timeout_seconds: float = Field(default=5.0, gt=0)
    endpoints: List[str] = Field(default_factory=lambda: list(DEFAULT_ENDPOINTS))

    @field_validator('endpoints')
    @classmethod
    def validate_endpoints(cls, v: List[str]) -> List[str]:
        """Only methods from the method table, each at most once."""
        unknown = [name for name in v if name not in METHOD_TABLE]
        if unknown:
            raise ValueError(
                f"Unknown endpoint(s): {', '.join(unknown)}. "
                f"Known: {', '.join(METHOD_TABLE)}"
            )
        if len(set(v)) != len(v):
            raise ValueError('Endpoints must not repeat')
        return v

    @model_validator(mode='after')
    def timeout_within_interval(self) -> 'CollectionConfig':
        """A pass is bounded by the RPC timeout, which must fit in one interval."""
        if self.rpc_timeout_seconds > self.poll_interval_seconds:
            raise ValueError('rpc_timeout_seconds must not exceed poll_interval_seconds')
        return self


class LoggingConfig(BaseModel):
    """Log output settings."""
    level: str = "INFO"

    @field_validator('level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR'):
            raise ValueError('level must be one of DEBUG, INFO, WARNING, ERROR')
        return level


class ExporterSystemConfig(BaseModel):
    """Root configuration model."""
    lnd: LndConfig = Field(default_factory=LndConfig)
    exporter: ExporterConfig = Field(default_factory=ExporterConfig)
    collection: CollectionConfig = Field(default_factory=CollectionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
