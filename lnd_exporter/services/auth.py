"""Connection authenticator: credential loading and initial handshake."""

import logging
import ssl
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

import httpx

from ..utils.errors import CollectionError, ConfigError
from .lnd_client import LndClient, build_ssl_context


@dataclass(frozen=True)
class ConnectionCredentials:
    """Everything needed to open an authenticated channel to the node."""

    endpoint: str
    tls_cert: bytes
    macaroon: bytes
    node_pubkey: str = ""

    def __repr__(self) -> str:
        # Keep the macaroon out of logs and tracebacks.
        return (
            f"ConnectionCredentials(endpoint={self.endpoint!r}, "
            f"node_pubkey={self.node_pubkey!r})"
        )


def _read_file(path: str, what: str) -> bytes:
    file_path = Path(path).expanduser()
    try:
        return file_path.read_bytes()
    except OSError as e:
        raise ConfigError(f"Cannot read {what} at {file_path}: {e.strerror or e}") from e


def validate_endpoint(endpoint: str) -> str:
    """
    Check that the node address is an absolute https URL with a host.

    Raises:
        ConfigError: If the address is malformed
    """
    try:
        url = httpx.URL(endpoint)
    except (httpx.InvalidURL, TypeError) as e:
        raise ConfigError(f"Malformed LND endpoint {endpoint!r}: {e}") from e

    if url.scheme != "https" or not url.host:
        raise ConfigError(f"LND endpoint must look like https://host:port, got {endpoint!r}")
    return str(url).rstrip("/")


def load_credentials(cert_path: str, macaroon_path: str, endpoint: str) -> ConnectionCredentials:
    """
    Load and validate credential files without touching the network.

    Args:
        cert_path: Path to the node's PEM TLS certificate
        macaroon_path: Path to the binary macaroon file
        endpoint: LND REST address, e.g. https://localhost:8080

    Returns:
        ConnectionCredentials: Credentials without the node identity

    Raises:
        ConfigError: Unreadable or malformed files, or malformed endpoint
    """
    endpoint = validate_endpoint(endpoint)

    tls_cert = _read_file(cert_path, "TLS certificate")
    try:
        build_ssl_context(tls_cert)
    except (ssl.SSLError, ValueError) as e:
        raise ConfigError(f"TLS certificate at {cert_path} is not a valid PEM certificate: {e}") from e

    macaroon = _read_file(macaroon_path, "macaroon")
    if not macaroon.strip():
        raise ConfigError(f"Macaroon at {macaroon_path} is empty")

    return ConnectionCredentials(endpoint=endpoint, tls_cert=tls_cert, macaroon=macaroon)


async def handshake(
    credentials: ConnectionCredentials,
    timeout: float,
    logger: Optional[logging.Logger] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> ConnectionCredentials:
    """
    Call GetInfo once to prove the node is reachable and accepts the macaroon.

    Returns:
        ConnectionCredentials: Copy carrying the node identity pubkey

    Raises:
        ConfigError: If the node cannot be reached or rejects the call
    """
    async with LndClient(credentials, timeout, logger, transport=transport) as client:
        try:
            info = await client.get_info()
        except CollectionError as e:
            raise ConfigError(f"Handshake with {credentials.endpoint} failed: {e}") from e

    node_pubkey = info.get("identity_pubkey", "")
    if not node_pubkey:
        raise ConfigError(f"Node at {credentials.endpoint} did not report an identity pubkey")
    return replace(credentials, node_pubkey=node_pubkey)


async def authenticate(
    cert_path: str,
    macaroon_path: str,
    endpoint: str,
    timeout: float = 5.0,
    logger: Optional[logging.Logger] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> ConnectionCredentials:
    """
    Load credentials and verify them against the node.

    The macaroon is read here exactly once; later calls reuse the cached bytes.
    No retry: any failure is fatal to startup.

    Raises:
        ConfigError: See load_credentials and handshake
    """
    logger = logger or logging.getLogger(__name__)

    credentials = load_credentials(cert_path, macaroon_path, endpoint)
    logger.info("TLS certificate and macaroon loaded")

    credentials = await handshake(credentials, timeout, logger, transport=transport)
    logger.info(
        f"Connected to LND node at {credentials.endpoint}",
        extra={"node_pubkey": credentials.node_pubkey}
    )
    return credentials
