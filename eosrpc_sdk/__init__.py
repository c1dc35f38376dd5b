"""
EOS RPC SDK: build, sign and broadcast EOSIO contract actions.
"""
from .version import __version__
from .builder import TX_EXPIRATION_IN_MILSEC, TransactionBuilder
from .client import EOSIO_SYSTEM_ACCOUNT, EOSIO_TOKEN_CONTRACT, EosRpcClient, PipelineStage
from .config import ClientConfig
from .crypto import EosPrivateKey, EosPublicKey, EosSignature, LocalSigner, Signer
from .envelope import Ok, ResponseEnvelope, decode_payload, is_failure
from .exceptions import (
    ConfigError, EosRpcError, KeyFormatError, NameFormatError,
    SerializationError, SigningError, TransportError
)
from .models import (
    ActionIntent, BroadcastResult, ChainInfo, EncodedAction, PackedTransaction,
    SignedTransaction, UnsignedTransaction
)
from .timeutil import add_milliseconds

__all__ = [
    "EosRpcClient",
    "ClientConfig",
    "PipelineStage",
    "TransactionBuilder",
    "ResponseEnvelope",
    "Ok",
    "decode_payload",
    "is_failure",
    "add_milliseconds",
    "ActionIntent",
    "BroadcastResult",
    "ChainInfo",
    "EncodedAction",
    "UnsignedTransaction",
    "SignedTransaction",
    "PackedTransaction",
    "EosPrivateKey",
    "EosPublicKey",
    "EosSignature",
    "LocalSigner",
    "Signer",
    "EosRpcError",
    "ConfigError",
    "KeyFormatError",
    "NameFormatError",
    "SerializationError",
    "SigningError",
    "TransportError",
    "TX_EXPIRATION_IN_MILSEC",
    "EOSIO_SYSTEM_ACCOUNT",
    "EOSIO_TOKEN_CONTRACT",
    "__version__",
]
