"""
Key handling and signing for the EOS RPC SDK.
"""
from .keys import EosPrivateKey, EosPublicKey, EosSignature, is_canonical
from .signer import LocalSigner, Signer, sign_transaction

__all__ = [
    'EosPrivateKey',
    'EosPublicKey',
    'EosSignature',
    'LocalSigner',
    'Signer',
    'is_canonical',
    'sign_transaction',
]
