"""
Transport layer between the client and a nodeos HTTP API.

A transport turns ``(path, body)`` into a ResponseEnvelope. It never raises
for network or HTTP problems; those come back as failed envelopes so the
transaction pipeline can hand them to its caller unchanged.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..envelope import ResponseEnvelope

logger = logging.getLogger(__name__)

# Chain API paths
GET_INFO = "/v1/chain/get_info"
GET_BLOCK = "/v1/chain/get_block"
GET_ACCOUNT = "/v1/chain/get_account"
GET_TABLE_ROWS = "/v1/chain/get_table_rows"
GET_CURRENCY_BALANCE = "/v1/chain/get_currency_balance"
ABI_JSON_TO_BIN = "/v1/chain/abi_json_to_bin"
GET_REQUIRED_KEYS = "/v1/chain/get_required_keys"
PUSH_TRANSACTION = "/v1/chain/push_transaction"
# History API paths
GET_KEY_ACCOUNTS = "/v1/history/get_key_accounts"
GET_ACTIONS = "/v1/history/get_actions"


class NodeTransport(ABC):
    """
    Abstract base class for node transports.

    Implementations must be safe to share between threads: independent
    pipeline invocations may run concurrently on one client.
    """

    @abstractmethod
    def is_available(self) -> bool:
        """
        Check if this transport can be used.

        Returns:
            True if transport is available, False otherwise
        """
        pass

    @abstractmethod
    def initialize(
        self,
        node_url: str,
        verify_ssl: bool = True,
        timeout: float = 30,
        retry_count: int = 0
    ) -> None:
        """
        Prepare the transport for requests against ``node_url``.

        Args:
            node_url: Base URL of the node
            verify_ssl: Whether to verify TLS certificates
            timeout: Per-request timeout in seconds
            retry_count: Connection-level retries per request
        """
        pass

    @abstractmethod
    def post(self, path: str, body: Optional[Dict[str, Any]] = None) -> ResponseEnvelope:
        """
        POST ``body`` as JSON to ``path``.

        Returns:
            The outcome as a ResponseEnvelope

        Raises:
            TransportError: If the transport was not initialized
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release any open connections."""
        pass


def get_http_transport() -> NodeTransport:
    from .http_transport import HttpTransport
    return HttpTransport()


def get_stub_transport() -> NodeTransport:
    """
    Get an in-memory node.

    Always available since it has no network dependency.
    """
    from .stub_transport import StubTransport
    return StubTransport()


def get_transport(prefer_stub: bool = False) -> NodeTransport:
    """
    Get the transport to use for a client.

    Args:
        prefer_stub: Use the in-memory node instead of HTTP

    Returns:
        An uninitialized transport
    """
    if prefer_stub:
        logger.info("Using stub transport for node RPC")
        return get_stub_transport()

    transport = get_http_transport()
    if transport.is_available():
        logger.debug("Using HTTP transport for node RPC")
        return transport

    logger.warning("HTTP transport unavailable, falling back to stub transport")
    return get_stub_transport()
