"""
Data models for the EOS RPC SDK.

Every model is frozen: a pipeline stage hands a new object to the next
stage instead of mutating the one it received.
"""
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _require_hex(value: str, what: str, min_bytes: int = 0) -> str:
    try:
        raw = bytes.fromhex(value)
    except ValueError:
        raise ValueError(f"{what} must be a hex string")
    if len(raw) < min_bytes:
        raise ValueError(f"{what} must be at least {min_bytes} bytes")
    return value


class ChainInfo(BaseModel):
    """Head-state snapshot returned by ``/v1/chain/get_info``"""
    model_config = ConfigDict(frozen=True)

    head_block_id: str
    head_block_time: str
    chain_id: Optional[str] = None
    head_block_num: Optional[int] = None
    last_irreversible_block_num: Optional[int] = None
    server_version: Optional[str] = None

    @field_validator("head_block_id")
    @classmethod
    def check_block_id(cls, v: str) -> str:
        return _require_hex(v, "head_block_id", min_bytes=12)

    @field_validator("chain_id")
    @classmethod
    def check_chain_id(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if len(_require_hex(v, "chain_id")) != 64:
            raise ValueError("chain_id must be 32 bytes of hex")
        return v


class ActionIntent(BaseModel):
    """A caller's request to invoke ``action_name`` on ``contract_account``"""
    model_config = ConfigDict(frozen=True)

    contract_account: str
    action_name: str
    args: Dict[str, Any] = Field(default_factory=dict)


class EncodedAction(BaseModel):
    """An action whose arguments were ABI-encoded by the node"""
    model_config = ConfigDict(frozen=True)

    contract_account: str
    action_name: str
    authorization: Tuple[str, ...]
    binary_data: str

    def permission_levels(self) -> List[Tuple[str, str]]:
        """
        Split ``actor@permission`` strings into pairs.

        Returns:
            List of (actor, permission) tuples in authorization order
        """
        levels = []
        for entry in self.authorization:
            actor, _, permission = entry.partition("@")
            levels.append((actor, permission))
        return levels


class UnsignedTransaction(BaseModel):
    """A fully shaped transaction with an empty signature list"""
    model_config = ConfigDict(frozen=True)

    actions: Tuple[EncodedAction, ...]
    reference_block_id: str
    expiration: str
    signatures: Tuple[str, ...] = ()
    max_net_usage_words: int = 0
    max_cpu_usage_ms: int = 0
    delay_sec: int = 0


class SignedTransaction(UnsignedTransaction):
    """An UnsignedTransaction bound to a chain id, carrying signatures"""
    chain_id: str

    @classmethod
    def from_unsigned(cls, transaction: UnsignedTransaction, chain_id: str) -> "SignedTransaction":
        """Copy ``transaction`` into a new signed transaction with no signatures yet."""
        data = transaction.model_dump()
        data["signatures"] = ()
        data["chain_id"] = chain_id
        return cls.model_validate(data)

    def with_signature(self, signature: str) -> "SignedTransaction":
        return self.model_copy(update={"signatures": self.signatures + (signature,)})


class PackedTransaction(BaseModel):
    """Broadcast-ready wire form of a SignedTransaction"""
    model_config = ConfigDict(frozen=True)

    signatures: Tuple[str, ...]
    compression: str = "none"
    packed_context_free_data: str = ""
    packed_trx: str

    def to_request(self) -> Dict[str, Any]:
        """Body for ``/v1/chain/push_transaction``"""
        return {
            "signatures": list(self.signatures),
            "compression": self.compression,
            "packed_context_free_data": self.packed_context_free_data,
            "packed_trx": self.packed_trx,
        }


class AbiJsonToBinResult(BaseModel):
    """Payload of ``/v1/chain/abi_json_to_bin``"""
    binargs: str

    @field_validator("binargs")
    @classmethod
    def check_binargs(cls, v: str) -> str:
        return _require_hex(v, "binargs")


class RequiredKeysResult(BaseModel):
    """Payload of ``/v1/chain/get_required_keys``"""
    required_keys: List[str]


class BroadcastResult(BaseModel):
    """Payload of ``/v1/chain/push_transaction``"""
    transaction_id: str
    processed: Optional[Dict[str, Any]] = None


class TableRowsRequest(BaseModel):
    """Query for ``/v1/chain/get_table_rows``"""
    model_config = ConfigDict(populate_by_name=True)

    scope: str
    code: str
    table: str
    json_rows: bool = Field(True, alias="json")
    lower_bound: Optional[str] = None
    upper_bound: Optional[str] = None
    limit: int = 10
    reverse: Optional[bool] = None
    index_position: Optional[str] = None
    key_type: Optional[str] = None
    encode_type: Optional[str] = None

    def to_request(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
