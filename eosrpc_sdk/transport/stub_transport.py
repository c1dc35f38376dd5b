"""
In-memory stand-in for a nodeos chain API.

Useful for development and tests: it answers the calls the transaction
pipeline makes, records every request, and lets a test replace the answer
for any path with a canned envelope.
"""
import copy
import hashlib
import json
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..envelope import ResponseEnvelope
from ..exceptions import TransportError
from . import transport as paths
from .transport import NodeTransport

logger = logging.getLogger(__name__)

STUB_CHAIN_ID = "cf057bbfb72640471fd910bcb67639c22df9f92470936cddc1ade0e2f2e7dc4f"
STUB_HEAD_BLOCK_ID = "0000000a5f1a6bd17c4a8f3e3e0f4c9d2b1a0e9f8d7c6b5a4938271605f4e3d2"
STUB_HEAD_BLOCK_TIME = "2023-01-01T00:00:00.000"


def _not_found(path: str) -> ResponseEnvelope:
    body = json.dumps({"code": 404, "message": "Not Found", "error": {"what": f"Unknown endpoint {path}"}})
    return ResponseEnvelope.failure(raw=body, status_code=404)


def _server_error(message: str) -> ResponseEnvelope:
    body = json.dumps({"code": 500, "message": "Internal Service Error", "error": {"what": message}})
    return ResponseEnvelope.failure(raw=body, status_code=500)


class StubTransport(NodeTransport):
    """
    A deterministic fake node.

    ``abi_json_to_bin`` returns the hex of the canonical JSON arguments,
    ``get_required_keys`` echoes the available keys unless ``required_keys``
    is set, and ``push_transaction`` reports the SHA-256 of the packed
    transaction as its id.
    """

    def __init__(
        self,
        chain_info: Optional[Dict[str, Any]] = None,
        required_keys: Optional[List[str]] = None,
        latency: float = 0.0
    ):
        self.node_url: Optional[str] = None
        self.initialized = False
        self.chain_info = chain_info or {
            "server_version": "stub",
            "chain_id": STUB_CHAIN_ID,
            "head_block_num": 10,
            "last_irreversible_block_num": 9,
            "head_block_id": STUB_HEAD_BLOCK_ID,
            "head_block_time": STUB_HEAD_BLOCK_TIME,
        }
        self.required_keys = required_keys
        self.latency = latency
        self.overrides: Dict[str, ResponseEnvelope] = {}
        self.calls: List[Tuple[str, Any]] = []
        self._lock = threading.Lock()
        self._handlers: Dict[str, Callable[[Dict[str, Any]], ResponseEnvelope]] = {
            paths.GET_INFO: self._get_info,
            paths.ABI_JSON_TO_BIN: self._abi_json_to_bin,
            paths.GET_REQUIRED_KEYS: self._get_required_keys,
            paths.PUSH_TRANSACTION: self._push_transaction,
            paths.GET_BLOCK: self._get_block,
            paths.GET_ACCOUNT: self._get_account,
            paths.GET_KEY_ACCOUNTS: lambda body: ResponseEnvelope.ok({"account_names": []}),
            paths.GET_ACTIONS: lambda body: ResponseEnvelope.ok({"actions": [], "last_irreversible_block": 9}),
            paths.GET_TABLE_ROWS: lambda body: ResponseEnvelope.ok({"rows": [], "more": False}),
            paths.GET_CURRENCY_BALANCE: lambda body: ResponseEnvelope.ok([]),
        }

    def is_available(self) -> bool:
        return True

    def initialize(
        self,
        node_url: str,
        verify_ssl: bool = True,
        timeout: float = 30,
        retry_count: int = 0
    ) -> None:
        self.node_url = node_url
        self.initialized = True
        logger.debug(f"Initialized stub transport for {node_url}")

    def set_response(self, path: str, envelope: ResponseEnvelope) -> None:
        """Answer every later call to ``path`` with ``envelope``."""
        self.overrides[path] = envelope

    def call_count(self, path: str) -> int:
        with self._lock:
            return sum(1 for called, _ in self.calls if called == path)

    def bodies(self, path: str) -> List[Any]:
        with self._lock:
            return [body for called, body in self.calls if called == path]

    def post(self, path: str, body: Optional[Dict[str, Any]] = None) -> ResponseEnvelope:
        if not self.initialized:
            raise TransportError("Stub transport not initialized", path=path)

        with self._lock:
            self.calls.append((path, copy.deepcopy(body)))

        if self.latency:
            time.sleep(self.latency)

        if path in self.overrides:
            return self.overrides[path]
        handler = self._handlers.get(path)
        if handler is None:
            return _not_found(path)
        return handler(body or {})

    def close(self) -> None:
        pass

    def _get_info(self, body: Dict[str, Any]) -> ResponseEnvelope:
        return ResponseEnvelope.ok(self.chain_info)

    def _abi_json_to_bin(self, body: Dict[str, Any]) -> ResponseEnvelope:
        if not body.get("code") or not body.get("action"):
            return _server_error("abi_json_to_bin requires code and action")
        encoded = json.dumps(body.get("args", {}), sort_keys=True, separators=(",", ":"))
        return ResponseEnvelope.ok({"binargs": encoded.encode("utf-8").hex()})

    def _get_required_keys(self, body: Dict[str, Any]) -> ResponseEnvelope:
        if "transaction" not in body:
            return _server_error("get_required_keys requires a transaction")
        if self.required_keys is not None:
            keys = list(self.required_keys)
        else:
            keys = list(body.get("available_keys", []))
        return ResponseEnvelope.ok({"required_keys": keys})

    def _push_transaction(self, body: Dict[str, Any]) -> ResponseEnvelope:
        try:
            packed = bytes.fromhex(body.get("packed_trx", ""))
        except ValueError:
            return _server_error("packed_trx is not valid hex")
        if not packed or not body.get("signatures"):
            return _server_error("transaction is missing packed data or signatures")
        tx_id = hashlib.sha256(packed).hexdigest()
        logger.info(f"Stub node accepted transaction {tx_id[:16]}...")
        return ResponseEnvelope.ok({
            "transaction_id": tx_id,
            "processed": {"id": tx_id, "receipt": {"status": "executed"}},
        })

    def _get_block(self, body: Dict[str, Any]) -> ResponseEnvelope:
        return ResponseEnvelope.ok({
            "id": self.chain_info.get("head_block_id"),
            "block_num": body.get("block_num_or_id"),
            "timestamp": self.chain_info.get("head_block_time"),
            "transactions": [],
        })

    def _get_account(self, body: Dict[str, Any]) -> ResponseEnvelope:
        name = body.get("account_name")
        if not name:
            return _server_error("account_name is required")
        return ResponseEnvelope.ok({"account_name": name, "permissions": []})
