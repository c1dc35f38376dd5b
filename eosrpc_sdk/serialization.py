"""
Binary and JSON encodings of EOSIO transactions.

Packing is pure and deterministic: the same SignedTransaction always packs
to the same bytes. Layout of a packed transaction::

    expiration            uint32   seconds since epoch
    ref_block_num         uint16   low 16 bits of the reference block number
    ref_block_prefix      uint32   bytes 8..12 of the reference block id
    max_net_usage_words   varuint32
    max_cpu_usage_ms      uint8
    delay_sec             varuint32
    context_free_actions  vector<action>
    actions               vector<action>
    transaction_extensions vector<extension>

All integers are little-endian.
"""
import calendar
import hashlib
import logging
import struct
from typing import Any, Dict, List, Tuple

from ._rate_limited_log import rate_limited_log
from .exceptions import NameFormatError, SerializationError
from .models import EncodedAction, PackedTransaction, SignedTransaction, UnsignedTransaction
from .timeutil import parse_chain_time

logger = logging.getLogger(__name__)

NAME_CHARMAP = ".12345abcdefghijklmnopqrstuvwxyz"
UNREPRESENTABLE_EXPIRATION = 0
_UINT32_MAX = 0xFFFFFFFF
_MAX_NAME_LENGTH = 13
# The thirteenth character only has four bits available
_LAST_CHAR_ALPHABET = ".12345abcdefghij"
_EMPTY_CONTEXT_FREE_DIGEST = bytes(32)


def _char_to_symbol(char: str) -> int:
    index = NAME_CHARMAP.find(char)
    if index < 0:
        raise NameFormatError(f"Invalid character {char!r} in name")
    return index


def validate_name(name: str) -> str:
    """
    Check that ``name`` is a valid, non-empty EOSIO name.

    Raises:
        NameFormatError: If it is not
    """
    if not isinstance(name, str) or not name:
        raise NameFormatError("Name must be a non-empty string")
    if len(name) > _MAX_NAME_LENGTH:
        raise NameFormatError(f"Name {name!r} is longer than {_MAX_NAME_LENGTH} characters")
    if len(name) == _MAX_NAME_LENGTH and name[-1] not in _LAST_CHAR_ALPHABET:
        raise NameFormatError(f"Invalid thirteenth character in name {name!r}")
    for char in name:
        _char_to_symbol(char)
    return name


def name_to_uint64(name: str) -> int:
    """Encode an EOSIO name into its 64-bit value."""
    validate_name(name)
    value = 0
    for i, char in enumerate(name[:12]):
        value |= (_char_to_symbol(char) & 0x1F) << (64 - 5 * (i + 1))
    if len(name) == _MAX_NAME_LENGTH:
        value |= _char_to_symbol(name[12]) & 0x0F
    return value


def uint64_to_name(value: int) -> str:
    """Decode a 64-bit name value back into its string form."""
    chars = []
    remaining = value
    for i in range(_MAX_NAME_LENGTH):
        if i == 0:
            chars.append(NAME_CHARMAP[remaining & 0x0F])
            remaining >>= 4
        else:
            chars.append(NAME_CHARMAP[remaining & 0x1F])
            remaining >>= 5
    return "".join(reversed(chars)).rstrip(".")


def encode_varuint32(value: int) -> bytes:
    if value < 0 or value > 0xFFFFFFFF:
        raise SerializationError(f"varuint32 out of range: {value}")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _hex_to_bytes(value: str, what: str) -> bytes:
    try:
        return bytes.fromhex(value)
    except (ValueError, TypeError) as e:
        raise SerializationError(f"Invalid hex in {what}: {e}") from e


def reference_block_fields(block_id: str) -> Tuple[int, int]:
    """
    Derive ``(ref_block_num, ref_block_prefix)`` from a block id.

    The first four bytes of a block id hold the big-endian block number.
    """
    raw = _hex_to_bytes(block_id, "reference block id")
    if len(raw) < 12:
        raise SerializationError(f"Reference block id too short: {block_id!r}")
    ref_block_num = int.from_bytes(raw[0:4], "big") & 0xFFFF
    ref_block_prefix = struct.unpack_from("<I", raw, 8)[0]
    return ref_block_num, ref_block_prefix


def _expiration_seconds(expiration: str) -> int:
    """
    Seconds since epoch for ``expiration``.

    An expiration that does not parse, or does not fit in a uint32, packs as
    ``UNREPRESENTABLE_EXPIRATION``; the node rejects it as expired.
    """
    try:
        seconds = calendar.timegm(parse_chain_time(expiration).timetuple())
    except ValueError as e:
        rate_limited_log(
            f"Unparseable expiration {expiration!r} packed as {UNREPRESENTABLE_EXPIRATION}: {e}",
            level="warning",
            logger_instance=logger,
        )
        return UNREPRESENTABLE_EXPIRATION
    if not 0 <= seconds <= _UINT32_MAX:
        rate_limited_log(
            f"Expiration {expiration!r} is outside the uint32 range, "
            f"packed as {UNREPRESENTABLE_EXPIRATION}",
            level="warning",
            logger_instance=logger,
        )
        return UNREPRESENTABLE_EXPIRATION
    return seconds


def _pack_action(action: EncodedAction) -> bytes:
    levels = action.permission_levels()
    data = _hex_to_bytes(action.binary_data, "action data")
    out = bytearray()
    out += struct.pack("<QQ", name_to_uint64(action.contract_account), name_to_uint64(action.action_name))
    out += encode_varuint32(len(levels))
    for actor, permission in levels:
        out += struct.pack("<QQ", name_to_uint64(actor), name_to_uint64(permission))
    out += encode_varuint32(len(data))
    out += data
    return bytes(out)


def pack_transaction_body(transaction: UnsignedTransaction) -> bytes:
    """
    Serialize the transaction header and actions (signatures excluded).

    Raises:
        SerializationError: If a field cannot be encoded
        NameFormatError: If an account, action or permission name is invalid
    """
    ref_block_num, ref_block_prefix = reference_block_fields(transaction.reference_block_id)
    if not 0 <= transaction.max_cpu_usage_ms <= 0xFF:
        raise SerializationError(f"max_cpu_usage_ms out of range: {transaction.max_cpu_usage_ms}")

    out = bytearray()
    out += struct.pack("<IHI", _expiration_seconds(transaction.expiration), ref_block_num, ref_block_prefix)
    out += encode_varuint32(transaction.max_net_usage_words)
    out += struct.pack("<B", transaction.max_cpu_usage_ms)
    out += encode_varuint32(transaction.delay_sec)
    out += encode_varuint32(0)
    out += encode_varuint32(len(transaction.actions))
    for action in transaction.actions:
        out += _pack_action(action)
    out += encode_varuint32(0)
    return bytes(out)


def signing_digest(transaction: UnsignedTransaction, chain_id: str) -> bytes:
    """
    SHA-256 over chain id, packed transaction and the context-free data
    digest (all zeros, since no context-free data is ever attached).
    """
    chain = _hex_to_bytes(chain_id, "chain id")
    if len(chain) != 32:
        raise SerializationError(f"Chain id must be 32 bytes, got {len(chain)}")
    return hashlib.sha256(chain + pack_transaction_body(transaction) + _EMPTY_CONTEXT_FREE_DIGEST).digest()


def pack_transaction(transaction: SignedTransaction) -> PackedTransaction:
    return PackedTransaction(
        signatures=transaction.signatures,
        compression="none",
        packed_context_free_data="",
        packed_trx=pack_transaction_body(transaction).hex(),
    )


def transaction_id(packed: PackedTransaction) -> str:
    """The id a node assigns to ``packed``: SHA-256 of the packed body."""
    return hashlib.sha256(_hex_to_bytes(packed.packed_trx, "packed transaction")).hexdigest()


def action_to_json(action: EncodedAction) -> Dict[str, Any]:
    return {
        "account": action.contract_account,
        "name": action.action_name,
        "authorization": [
            {"actor": actor, "permission": permission}
            for actor, permission in action.permission_levels()
        ],
        "data": action.binary_data,
    }


def transaction_to_json(transaction: UnsignedTransaction) -> Dict[str, Any]:
    """
    JSON form of a transaction as the node's chain API accepts it.

    Raises:
        SerializationError: If the reference block id cannot be decoded
    """
    ref_block_num, ref_block_prefix = reference_block_fields(transaction.reference_block_id)
    actions: List[Dict[str, Any]] = [action_to_json(a) for a in transaction.actions]
    return {
        "expiration": transaction.expiration,
        "ref_block_num": ref_block_num,
        "ref_block_prefix": ref_block_prefix,
        "max_net_usage_words": transaction.max_net_usage_words,
        "max_cpu_usage_ms": transaction.max_cpu_usage_ms,
        "delay_sec": transaction.delay_sec,
        "context_free_actions": [],
        "actions": actions,
        "transaction_extensions": [],
        "signatures": list(transaction.signatures),
        "context_free_data": [],
    }
