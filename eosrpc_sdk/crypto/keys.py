"""
EOS key and signature encodings.

Supported string forms:

- private keys: legacy WIF (``5K...``) and ``PVT_K1_...``
- public keys: legacy ``EOS...`` and ``PUB_K1_...``
- signatures: ``SIG_K1_...``

Legacy WIF uses a double-SHA256 checksum; every other form uses the first
four bytes of RIPEMD-160, suffixed with the key type for the ``K1`` forms.
"""
import logging
from typing import Optional

import base58
from Crypto.Hash import RIPEMD160
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    Prehashed, decode_dss_signature, encode_dss_signature
)
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from eth_keys import keys as eth_keys_api
from eth_keys.exceptions import BadSignature, ValidationError as EthKeysValidationError

from ..exceptions import KeyFormatError, SigningError
from .ec_constants import SECP256K1_HALF_N, SECP256K1_MAX, SECP256K1_MIN, SECP256K1_N

logger = logging.getLogger(__name__)

LEGACY_PUBLIC_PREFIX = "EOS"
K1_PUBLIC_PREFIX = "PUB_K1_"
K1_PRIVATE_PREFIX = "PVT_K1_"
K1_SIGNATURE_PREFIX = "SIG_K1_"

_WIF_VERSION = 0x80
_K1_SUFFIX = b"K1"
# Compressed-key recovery header: 27 + 4 + recovery id
_COMPACT_HEADER = 31
_MAX_SIGN_ATTEMPTS = 64


def ripemd160(data: bytes) -> bytes:
    return RIPEMD160.new(data).digest()


def _b58decode(text: str, what: str) -> bytes:
    try:
        return base58.b58decode(text)
    except ValueError as e:
        raise KeyFormatError(f"Invalid base58 in {what}: {e}") from e


def _encode_k1(data: bytes, prefix: str) -> str:
    checksum = ripemd160(data + _K1_SUFFIX)[:4]
    return prefix + base58.b58encode(data + checksum).decode("ascii")


def _decode_k1(text: str, prefix: str, size: int, what: str) -> bytes:
    raw = _b58decode(text[len(prefix):], what)
    if len(raw) != size + 4:
        raise KeyFormatError(f"Invalid {what} length: expected {size} bytes, got {len(raw) - 4}")
    data, checksum = raw[:-4], raw[-4:]
    if ripemd160(data + _K1_SUFFIX)[:4] != checksum:
        raise KeyFormatError(f"Checksum mismatch in {what}")
    return data


def is_canonical(compact: bytes) -> bool:
    """
    Check the canonical-signature rule enforced by EOSIO nodes.

    Args:
        compact: 65-byte signature (header byte, r, s)
    """
    return (
        not (compact[1] & 0x80)
        and not (compact[1] == 0 and not (compact[2] & 0x80))
        and not (compact[33] & 0x80)
        and not (compact[33] == 0 and not (compact[34] & 0x80))
    )


class EosPublicKey:
    """A compressed secp256k1 public key"""

    def __init__(self, compressed: bytes):
        if len(compressed) != 33:
            raise KeyFormatError(f"Public key must be 33 compressed bytes, got {len(compressed)}")
        try:
            self._key = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), compressed)
        except ValueError as e:
            raise KeyFormatError(f"Public key is not a valid curve point: {e}") from e
        self.compressed = bytes(compressed)

    @classmethod
    def from_string(cls, text: str) -> "EosPublicKey":
        """
        Decode ``EOS...`` or ``PUB_K1_...``.

        Raises:
            KeyFormatError: If the string is not a valid public key
        """
        if not isinstance(text, str):
            raise KeyFormatError(f"Public key must be a string, got {type(text).__name__}")
        if text.startswith(K1_PUBLIC_PREFIX):
            return cls(_decode_k1(text, K1_PUBLIC_PREFIX, 33, "public key"))
        if text.startswith(LEGACY_PUBLIC_PREFIX):
            raw = _b58decode(text[len(LEGACY_PUBLIC_PREFIX):], "public key")
            if len(raw) != 37:
                raise KeyFormatError(f"Invalid public key length: {len(raw)}")
            data, checksum = raw[:-4], raw[-4:]
            if ripemd160(data)[:4] != checksum:
                raise KeyFormatError("Checksum mismatch in public key")
            return cls(data)
        raise KeyFormatError(f"Unrecognised public key prefix: {text[:7]!r}")

    def to_legacy_string(self) -> str:
        checksum = ripemd160(self.compressed)[:4]
        return LEGACY_PUBLIC_PREFIX + base58.b58encode(self.compressed + checksum).decode("ascii")

    def to_k1_string(self) -> str:
        return _encode_k1(self.compressed, K1_PUBLIC_PREFIX)

    def verify(self, digest: bytes, signature: "EosSignature") -> bool:
        """Check ``signature`` over a 32-byte ``digest``."""
        der = encode_dss_signature(signature.r, signature.s)
        try:
            self._key.verify(der, digest, ec.ECDSA(Prehashed(hashes.SHA256())))
        except InvalidSignature:
            return False
        return True

    def __eq__(self, other: object) -> bool:
        return isinstance(other, EosPublicKey) and other.compressed == self.compressed

    def __hash__(self) -> int:
        return hash(self.compressed)

    def __str__(self) -> str:
        return self.to_legacy_string()

    def __repr__(self) -> str:
        return f"EosPublicKey({self.to_legacy_string()!r})"


class EosSignature:
    """A 65-byte compact recoverable signature"""

    def __init__(self, compact: bytes):
        if len(compact) != 65:
            raise KeyFormatError(f"Signature must be 65 bytes, got {len(compact)}")
        self.compact = bytes(compact)

    @classmethod
    def from_string(cls, text: str) -> "EosSignature":
        if not isinstance(text, str) or not text.startswith(K1_SIGNATURE_PREFIX):
            raise KeyFormatError("Signature must start with SIG_K1_")
        return cls(_decode_k1(text, K1_SIGNATURE_PREFIX, 65, "signature"))

    @property
    def recovery_id(self) -> int:
        return self.compact[0] - _COMPACT_HEADER

    @property
    def r(self) -> int:
        return int.from_bytes(self.compact[1:33], "big")

    @property
    def s(self) -> int:
        return int.from_bytes(self.compact[33:65], "big")

    def recover(self, digest: bytes) -> EosPublicKey:
        """Recover the signing public key from a 32-byte ``digest``."""
        try:
            signature = eth_keys_api.Signature(vrs=(self.recovery_id, self.r, self.s))
            public = signature.recover_public_key_from_msg_hash(digest)
        except (BadSignature, EthKeysValidationError) as e:
            raise KeyFormatError(f"Cannot recover public key: {e}") from e
        return EosPublicKey(public.to_compressed_bytes())

    def __str__(self) -> str:
        return _encode_k1(self.compact, K1_SIGNATURE_PREFIX)

    def __repr__(self) -> str:
        return f"EosSignature({str(self)!r})"


class EosPrivateKey:
    """A secp256k1 private key in EOS encodings"""

    def __init__(self, secret: bytes):
        if len(secret) != 32:
            raise KeyFormatError(f"Private key must be 32 bytes, got {len(secret)}")
        value = int.from_bytes(secret, "big")
        if not SECP256K1_MIN <= value <= SECP256K1_MAX:
            raise KeyFormatError("Private key is outside the secp256k1 range")
        self._secret = bytes(secret)
        self._key = ec.derive_private_key(value, ec.SECP256K1())
        self._public_key: Optional[EosPublicKey] = None

    @classmethod
    def from_string(cls, text: str) -> "EosPrivateKey":
        """
        Decode a legacy WIF or ``PVT_K1_`` private key.

        Raises:
            KeyFormatError: If the string is not a valid private key
        """
        if not isinstance(text, str) or not text:
            raise KeyFormatError("Private key must be a non-empty string")
        if text.startswith(K1_PRIVATE_PREFIX):
            return cls(_decode_k1(text, K1_PRIVATE_PREFIX, 32, "private key"))
        try:
            raw = base58.b58decode_check(text)
        except ValueError as e:
            raise KeyFormatError(f"Invalid WIF private key: {e}") from e
        if len(raw) != 33 or raw[0] != _WIF_VERSION:
            raise KeyFormatError("Invalid WIF private key: unexpected version or length")
        return cls(raw[1:])

    @classmethod
    def generate(cls) -> "EosPrivateKey":
        key = ec.generate_private_key(ec.SECP256K1())
        return cls(key.private_numbers().private_value.to_bytes(32, "big"))

    @property
    def public_key(self) -> EosPublicKey:
        if self._public_key is None:
            compressed = self._key.public_key().public_bytes(
                Encoding.X962, PublicFormat.CompressedPoint
            )
            self._public_key = EosPublicKey(compressed)
        return self._public_key

    def to_wif(self) -> str:
        return base58.b58encode_check(bytes([_WIF_VERSION]) + self._secret).decode("ascii")

    def to_k1_string(self) -> str:
        return _encode_k1(self._secret, K1_PRIVATE_PREFIX)

    def sign_digest(self, digest: bytes) -> EosSignature:
        """
        Produce a canonical, low-S recoverable signature over ``digest``.

        ECDSA nonces are random, so a non-canonical result is simply
        discarded and the digest signed again.

        Raises:
            SigningError: If ``digest`` is not 32 bytes or no canonical
                signature was found
        """
        if len(digest) != 32:
            raise SigningError(f"Digest must be 32 bytes, got {len(digest)}")

        for _ in range(_MAX_SIGN_ATTEMPTS):
            der = self._key.sign(digest, ec.ECDSA(Prehashed(hashes.SHA256())))
            r, s = decode_dss_signature(der)
            if s > SECP256K1_HALF_N:
                s = SECP256K1_N - s
            body = r.to_bytes(32, "big") + s.to_bytes(32, "big")
            # header byte does not take part in the canonical check
            if not is_canonical(b"\x00" + body):
                continue
            recovery_id = self._recovery_id(digest, r, s)
            return EosSignature(bytes([_COMPACT_HEADER + recovery_id]) + body)

        raise SigningError(f"No canonical signature after {_MAX_SIGN_ATTEMPTS} attempts")

    def _recovery_id(self, digest: bytes, r: int, s: int) -> int:
        expected = self.public_key.compressed
        for recovery_id in (0, 1):
            try:
                candidate = eth_keys_api.Signature(vrs=(recovery_id, r, s))
                recovered = candidate.recover_public_key_from_msg_hash(digest)
            except (BadSignature, EthKeysValidationError):
                continue
            if recovered.to_compressed_bytes() == expected:
                return recovery_id
        raise SigningError("Could not determine the signature recovery id")

    def __repr__(self) -> str:
        return f"EosPrivateKey(public_key={self.public_key.to_legacy_string()!r})"
