"""
Client configuration.
"""
import os
import urllib.parse
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .builder import DEFAULT_PERMISSION, TX_EXPIRATION_IN_MILSEC
from .exceptions import ConfigError
from .serialization import validate_name

ENV_PREFIX = "EOSRPC_"
DEFAULT_NODE_URL = "http://127.0.0.1:8888"
_LOCAL_HOSTS = ("localhost", "127.0.0.1")


class ClientConfig(BaseModel):
    """
    Settings for an EosRpcClient.

    Attributes:
        node_url: Base URL of the nodeos HTTP API
        timeout: Per-request timeout in seconds
        retry_count: Connection-level retries per request; 0 keeps the
            one-call-per-stage guarantee of the transaction pipeline
        verify_ssl: Whether to verify TLS certificates
        expiration_ms: Transaction lifetime after the head block time
        permission: Permission used to authorize actions
        prefer_stub: Use the in-memory stub node instead of HTTP
    """
    model_config = ConfigDict(frozen=True)

    node_url: str = DEFAULT_NODE_URL
    timeout: float = 30
    retry_count: int = 0
    verify_ssl: bool = True
    expiration_ms: int = TX_EXPIRATION_IN_MILSEC
    permission: str = DEFAULT_PERMISSION
    prefer_stub: bool = False

    @field_validator("node_url")
    @classmethod
    def check_node_url(cls, v: str) -> str:
        parsed = urllib.parse.urlparse(v)
        host = parsed.netloc.split(':')[0]
        if parsed.scheme != 'https' and host not in _LOCAL_HOSTS:
            raise ValueError(f"node_url must use https:// for security (got: {parsed.scheme}://)")
        return v.rstrip('/')

    @field_validator("retry_count", "expiration_ms")
    @classmethod
    def check_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator("permission")
    @classmethod
    def check_permission(cls, v: str) -> str:
        return validate_name(v)

    @field_validator("timeout")
    @classmethod
    def check_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @classmethod
    def create(cls, **kwargs: Any) -> "ClientConfig":
        """
        Build a config, converting validation failures to ConfigError.

        Raises:
            ConfigError: If any setting is invalid
        """
        try:
            return cls(**kwargs)
        except ValidationError as e:
            raise ConfigError(f"Invalid client configuration: {e}") from e

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None, **overrides: Any) -> "ClientConfig":
        """
        Read settings from ``EOSRPC_*`` environment variables.

        Recognised variables: ``EOSRPC_NODE_URL``, ``EOSRPC_TIMEOUT``,
        ``EOSRPC_RETRY_COUNT``, ``EOSRPC_VERIFY_SSL``,
        ``EOSRPC_EXPIRATION_MS``, ``EOSRPC_PERMISSION``. Keyword overrides
        win over the environment.
        """
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for field in ("node_url", "timeout", "retry_count", "verify_ssl", "expiration_ms", "permission"):
            raw = env.get(ENV_PREFIX + field.upper())
            if raw is not None and raw != "":
                values[field] = raw
        values.update(overrides)
        return cls.create(**values)
