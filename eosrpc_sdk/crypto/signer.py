"""
Transaction signers.
"""
import logging
from typing import Protocol, Union

from ..exceptions import SigningError
from ..models import SignedTransaction, UnsignedTransaction
from ..serialization import signing_digest
from .keys import EosPrivateKey, EosPublicKey

logger = logging.getLogger(__name__)


class Signer(Protocol):
    """Protocol for custom signers (hardware wallets, remote signing services)"""
    public_key: EosPublicKey

    def sign_digest(self, digest: bytes) -> str:
        """Sign a 32-byte digest and return a ``SIG_K1_`` string"""
        ...


class LocalSigner:
    """Signs with a private key held in process memory."""

    def __init__(self, private_key: Union[str, EosPrivateKey]):
        """
        Args:
            private_key: WIF / ``PVT_K1_`` string or an EosPrivateKey

        Raises:
            KeyFormatError: If the key string cannot be decoded
        """
        if isinstance(private_key, EosPrivateKey):
            self._key = private_key
        else:
            self._key = EosPrivateKey.from_string(private_key)
        self.public_key = self._key.public_key

    def sign_digest(self, digest: bytes) -> str:
        return str(self._key.sign_digest(digest))

    def __repr__(self) -> str:
        return f"LocalSigner(public_key={self.public_key.to_legacy_string()!r})"


def sign_transaction(
    transaction: UnsignedTransaction,
    signer: Signer,
    chain_id: str
) -> SignedTransaction:
    """
    Append one signature to ``transaction``.

    The input is never modified. An UnsignedTransaction is first copied into
    a fresh SignedTransaction bound to ``chain_id``; a SignedTransaction
    gains one more signature on a new copy.

    Args:
        transaction: Transaction to sign
        signer: Signer producing the signature
        chain_id: Hex chain id the signature is bound to

    Returns:
        A new SignedTransaction with one additional signature

    Raises:
        SerializationError: If the transaction cannot be packed for hashing
        SigningError: If the signer raises or returns something other than
            a signature string
    """
    if isinstance(transaction, SignedTransaction):
        if transaction.chain_id != chain_id:
            transaction = SignedTransaction.from_unsigned(transaction, chain_id)
        signed = transaction
    else:
        signed = SignedTransaction.from_unsigned(transaction, chain_id)

    digest = signing_digest(signed, chain_id)
    try:
        signature = signer.sign_digest(digest)
    except SigningError:
        raise
    except Exception as e:
        raise SigningError(f"Signer {type(signer).__name__} failed: {e}") from e
    if not isinstance(signature, str):
        raise SigningError(f"Signer returned {type(signature).__name__}, expected a SIG_K1_ string")
    logger.debug(f"Signed transaction with {signer.public_key.to_legacy_string()}")
    return signed.with_signature(signature)
