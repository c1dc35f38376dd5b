"""
Exceptions for the EOS RPC SDK.

Remote failures never surface as exceptions: they travel back to the caller
as the failing ``ResponseEnvelope``. The classes below cover caller input
and local collaborator errors only.
"""
from typing import Optional


class EosRpcError(Exception):
    """Base exception for all SDK errors."""
    pass


class ConfigError(EosRpcError):
    """Raised when the client configuration is invalid."""
    pass


class KeyFormatError(EosRpcError, ValueError):
    """Raised when a private key, public key or signature string cannot be decoded."""
    pass


class NameFormatError(EosRpcError, ValueError):
    """Raised when an account, action or permission name is not a valid EOSIO name."""
    pass


class SerializationError(EosRpcError):
    """Raised when a transaction cannot be packed into its binary form."""
    pass


class SigningError(EosRpcError):
    """Raised when a signature cannot be produced."""
    pass


class TransportError(EosRpcError):
    """Raised when a transport is used incorrectly (e.g. before initialization)."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)
