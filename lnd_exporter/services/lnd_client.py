"""Authenticated client for the LND REST gateway."""

import logging
import ssl
from typing import Any, Dict, Optional

import httpx

from ..utils.errors import (
    CredentialsRejectedError,
    RpcStatusError,
    RpcTimeoutError,
    RpcTransportError,
)


MACAROON_HEADER = "Grpc-Metadata-macaroon"

# LND reports macaroon problems as generic RPC errors (gRPC code 2/16).
_CREDENTIAL_ERROR_MARKERS = ("verification failed", "macaroon", "permission denied")


def build_ssl_context(tls_cert: bytes) -> ssl.SSLContext:
    """
    SSL context trusting only the node's own certificate.

    Raises:
        ssl.SSLError: If the bytes are not a PEM certificate
        ValueError: If the bytes are not ASCII text
    """
    return ssl.create_default_context(cadata=tls_cert.decode("ascii"))


class LndClient:
    """
    Thin async wrapper around ``httpx.AsyncClient`` for LND RPC methods.

    Every request carries the macaroon as hex in the ``Grpc-Metadata-macaroon``
    header. The macaroon and certificate come from ``ConnectionCredentials``
    and are never re-read from disk.
    """

    def __init__(
        self,
        credentials,
        timeout: float,
        logger: Optional[logging.Logger] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize client.

        Args:
            credentials: ConnectionCredentials from the authenticator
            timeout: Default per-request timeout in seconds
            logger: Optional logger instance
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.credentials = credentials
        self.timeout = timeout
        self.logger = (logger or logging.getLogger(__name__)).getChild("LndClient")

        client_kwargs = {
            "base_url": credentials.endpoint,
            "headers": {MACAROON_HEADER: credentials.macaroon.hex()},
            "timeout": timeout,
        }
        if transport is not None:
            client_kwargs["transport"] = transport
        else:
            client_kwargs["verify"] = build_ssl_context(credentials.tls_cert)

        self._client = httpx.AsyncClient(**client_kwargs)

    async def __aenter__(self) -> "LndClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def call(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        endpoint: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Invoke one RPC method and return the decoded reply.

        Args:
            path: REST gateway path of the method (e.g. "/v1/getinfo")
            params: Optional query parameters
            endpoint: Method name used in errors, defaults to the path

        Returns:
            dict: Decoded JSON reply

        Raises:
            RpcTimeoutError: Request exceeded the timeout
            RpcTransportError: Connection or TLS failure, or an undecodable reply
            CredentialsRejectedError: Node refused the macaroon
            RpcStatusError: Any other non-200 reply
        """
        endpoint = endpoint or path

        try:
            response = await self._client.get(path, params=params or None)
        except httpx.TimeoutException as e:
            raise RpcTimeoutError(endpoint, f"timed out after {self.timeout}s") from e
        except httpx.TransportError as e:
            raise RpcTransportError(endpoint, f"{type(e).__name__}: {e}") from e

        if response.status_code != 200:
            message = self._error_message(response)
            if response.status_code in (401, 403) or any(
                marker in message.lower() for marker in _CREDENTIAL_ERROR_MARKERS
            ):
                raise CredentialsRejectedError(endpoint, message, response.status_code)
            raise RpcStatusError(endpoint, message, response.status_code)

        try:
            reply = response.json()
        except ValueError as e:
            raise RpcTransportError(endpoint, f"invalid JSON reply: {e}") from e

        if not isinstance(reply, dict):
            raise RpcTransportError(endpoint, f"unexpected reply type {type(reply).__name__}")

        self.logger.debug(f"{endpoint} answered with {len(reply)} field(s)")
        return reply

    async def get_info(self) -> Dict[str, Any]:
        return await self.call("/v1/getinfo", endpoint="getinfo")

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Extract LND's ``{"code", "message"}`` error body if present."""
        try:
            body = response.json()
        except ValueError:
            return f"HTTP {response.status_code}: {response.text[:200]}"

        if isinstance(body, dict) and body.get("message"):
            return f"HTTP {response.status_code}: {body['message']}"
        return f"HTTP {response.status_code}"
