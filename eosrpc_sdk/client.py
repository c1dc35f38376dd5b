"""
EosRpcClient - Main client for the EOS RPC SDK.
"""
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

from ._rate_limited_log import rate_limited_log
from .builder import TransactionBuilder
from .config import ClientConfig
from .crypto.keys import EosPrivateKey, EosPublicKey
from .crypto.signer import LocalSigner, Signer, sign_transaction
from .envelope import ResponseEnvelope, decode_payload, is_failure
from .exceptions import KeyFormatError, NameFormatError, SerializationError, SigningError
from .models import (
    AbiJsonToBinResult, ActionIntent, ChainInfo, RequiredKeysResult,
    SignedTransaction, TableRowsRequest, UnsignedTransaction
)
from .serialization import pack_transaction, transaction_to_json, validate_name
from .transport import transport as paths
from .transport.transport import NodeTransport, get_transport

EOSIO_SYSTEM_ACCOUNT = "eosio"
EOSIO_TOKEN_CONTRACT = "eosio.token"


class PipelineStage(str, Enum):
    """States of a push_transaction run. FAILED is reachable from every state."""
    FETCH_CHAIN_INFO = "FETCH_CHAIN_INFO"
    ENCODE_ACTION = "ENCODE_ACTION"
    BUILD_TX = "BUILD_TX"
    NEGOTIATE_KEYS = "NEGOTIATE_KEYS"
    SIGN = "SIGN"
    PACK = "PACK"
    BROADCAST = "BROADCAST"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass(frozen=True)
class _Prepared:
    chain_info: ChainInfo
    transaction: UnsignedTransaction


class EosRpcClient:
    """
    Client for a nodeos chain API.

    The main entry point is ``push_transaction``, which runs the whole
    pipeline for one contract action::

        chain info -> abi_json_to_bin -> build -> get_required_keys
                   -> sign -> pack -> push_transaction

    Every remote call returns a ResponseEnvelope. When a stage fails, the
    envelope that failed is returned as-is and nothing after it runs. There
    are no retries inside the pipeline; retry by calling
    ``push_transaction`` again, which fetches fresh head-block state.

    The client keeps no per-transaction state, so one instance can serve
    concurrent invocations from several threads.
    """

    def __init__(
        self,
        node_url: Optional[str] = None,
        config: Optional[ClientConfig] = None,
        transport: Optional[NodeTransport] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the EosRpcClient

        Args:
            node_url: nodeos base URL (e.g., "https://jungle4.example.com").
                Overrides ``config.node_url`` when both are given.
            config: Client settings; read from ``EOSRPC_*`` environment
                variables when omitted
            transport: Transport to use instead of the configured default
            logger: Optional logger instance to use for debug/info logging

        Raises:
            ConfigError: If the settings are invalid (e.g. a non-https URL
                that is not localhost/127.0.0.1)
        """
        if config is None:
            config = ClientConfig.from_env(**({"node_url": node_url} if node_url else {}))
        elif node_url:
            config = ClientConfig.create(**{**config.model_dump(), "node_url": node_url})

        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.builder = TransactionBuilder(
            permission=config.permission,
            expiration_ms=config.expiration_ms,
            logger=self.logger,
        )
        self.transport = transport or get_transport(prefer_stub=config.prefer_stub)
        self.transport.initialize(
            config.node_url,
            verify_ssl=config.verify_ssl,
            timeout=config.timeout,
            retry_count=config.retry_count,
        )

    @property
    def node_url(self) -> str:
        return self.config.node_url

    def close(self) -> None:
        self.transport.close()

    def __enter__(self) -> "EosRpcClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Chain and history reads
    # ------------------------------------------------------------------

    def get_chain_info(self) -> ResponseEnvelope:
        return self.transport.post(paths.GET_INFO)

    def get_block(self, block_num_or_id: Union[int, str]) -> ResponseEnvelope:
        """
        Fetch a block by number or id.

        Args:
            block_num_or_id: Block height or block id
        """
        return self.transport.post(paths.GET_BLOCK, {"block_num_or_id": block_num_or_id})

    def get_account(self, account: str) -> ResponseEnvelope:
        return self.transport.post(paths.GET_ACCOUNT, {"account_name": account})

    def get_key_accounts(self, private_key: str) -> ResponseEnvelope:
        """
        List the accounts controlled by the public key of ``private_key``.

        The private key never leaves the process; only its public key is sent.

        Raises:
            KeyFormatError: If ``private_key`` cannot be decoded
        """
        public_key = EosPrivateKey.from_string(private_key).public_key
        return self.transport.post(paths.GET_KEY_ACCOUNTS, {"public_key": str(public_key)})

    def get_actions(self, account: str, pos: int = -1, offset: int = -20) -> ResponseEnvelope:
        """
        Fetch an account's action history.

        Args:
            account: Account name
            pos: Sequence position to start from, -1 for the latest
            offset: Number of actions relative to ``pos``
        """
        return self.transport.post(
            paths.GET_ACTIONS,
            {"account_name": account, "pos": pos, "offset": offset},
        )

    def get_table_rows(
        self,
        scope: str,
        code: str,
        table: str,
        limit: int = 10,
        lower_bound: Optional[str] = None,
        upper_bound: Optional[str] = None,
        reverse: Optional[bool] = None,
        index_position: Optional[str] = None,
        key_type: Optional[str] = None,
        encode_type: Optional[str] = None
    ) -> ResponseEnvelope:
        """
        Read rows from a contract table.

        Args:
            scope: Table scope
            code: Contract account owning the table
            table: Table name
            limit: Maximum rows to return
            lower_bound: First key to include
            upper_bound: Key to stop before
            reverse: Iterate from the upper bound down
            index_position: Index to query (primary, secondary, ... tenth)
            key_type: Type of the key at ``index_position`` (e.g. i64, name)
            encode_type: Key encoding (dec or hex)
        """
        request = TableRowsRequest(
            scope=scope,
            code=code,
            table=table,
            limit=limit,
            lower_bound=lower_bound,
            upper_bound=upper_bound,
            reverse=reverse,
            index_position=index_position,
            key_type=key_type,
            encode_type=encode_type,
        )
        return self.transport.post(paths.GET_TABLE_ROWS, request.to_request())

    def get_currency_balance(self, account: str, code: str, symbol: str) -> ResponseEnvelope:
        return self.transport.post(
            paths.GET_CURRENCY_BALANCE,
            {"account": account, "code": code, "symbol": symbol},
        )

    def abi_json_to_bin(self, code: str, action: str, args: Dict[str, Any]) -> ResponseEnvelope:
        """
        Ask the node to ABI-encode ``args`` for ``code::action``.

        Returns:
            Envelope whose payload carries ``binargs`` (hex) on success
        """
        return self.transport.post(
            paths.ABI_JSON_TO_BIN,
            {"code": code, "action": action, "args": args},
        )

    # ------------------------------------------------------------------
    # Transaction pipeline
    # ------------------------------------------------------------------

    def negotiate_required_keys(
        self,
        transaction: UnsignedTransaction,
        candidate_keys: Sequence[str]
    ) -> ResponseEnvelope:
        """
        Ask the node which of ``candidate_keys`` must sign ``transaction``.

        The node's answer is authoritative and is not checked against the
        candidates here.

        Args:
            transaction: Fully shaped, unsigned transaction
            candidate_keys: Public keys the caller can sign with

        Returns:
            Envelope whose payload carries ``required_keys`` on success
        """
        body = {
            "transaction": transaction_to_json(transaction),
            "available_keys": list(candidate_keys),
        }
        return self.transport.post(paths.GET_REQUIRED_KEYS, body)

    def get_required_keys(
        self,
        contract_account: str,
        action_name: str,
        invoking_account: str,
        private_key: Union[str, Signer],
        args: Dict[str, Any]
    ) -> ResponseEnvelope:
        """
        Build the transaction ``push_transaction`` would send and return the
        node's required-keys answer for it, without signing or broadcasting.

        Args:
            contract_account: Contract to invoke
            action_name: Action on the contract
            invoking_account: Account authorizing the action
            private_key: WIF / ``PVT_K1_`` key, or a Signer
            args: Action arguments by name

        Returns:
            The get_required_keys envelope, or the envelope of the stage that
            failed before it

        Raises:
            NameFormatError: If an account or action name is invalid
            TypeError: If ``args`` is not a mapping
            KeyFormatError: If ``private_key`` cannot be decoded
        """
        intent, signer = self._validate_inputs(
            contract_account, action_name, invoking_account, private_key, args
        )
        prepared = self._prepare(intent, invoking_account, require_chain_id=False)
        if is_failure(prepared):
            return prepared

        self._enter(PipelineStage.NEGOTIATE_KEYS)
        envelope = self.negotiate_required_keys(
            prepared.transaction, [signer.public_key.to_legacy_string()]
        )
        if not envelope.success:
            return self._fail(PipelineStage.NEGOTIATE_KEYS, envelope)
        return envelope

    def push_transaction(
        self,
        contract_account: str,
        action_name: str,
        invoking_account: str,
        private_key: Union[str, Signer],
        args: Dict[str, Any]
    ) -> ResponseEnvelope:
        """
        Invoke ``contract_account::action_name`` as ``invoking_account``.

        Makes exactly one call each to get_info, abi_json_to_bin,
        get_required_keys and push_transaction when every stage succeeds.

        Args:
            contract_account: Contract to invoke
            action_name: Action on the contract
            invoking_account: Account authorizing the action
            private_key: WIF / ``PVT_K1_`` key, or a Signer
            args: Action arguments by name

        Once the inputs are accepted, every outcome is a ResponseEnvelope:
        node and transport failures come back as the failing stage's
        envelope, and local signing or packing failures as an envelope whose
        ``raw`` names the error and the stage. Only the caller-input checks
        below raise, and they do so before any remote call. Names are
        checked locally, so a name the node would also reject never reaches
        it.

        Returns:
            The push_transaction envelope, or the envelope of the first stage
            that failed

        Raises:
            NameFormatError: If an account or action name is invalid
            TypeError: If ``args`` is not a mapping
            KeyFormatError: If ``private_key`` is neither a decodable key
                string nor a Signer
        """
        intent, signer = self._validate_inputs(
            contract_account, action_name, invoking_account, private_key, args
        )
        prepared = self._prepare(intent, invoking_account, require_chain_id=True)
        if is_failure(prepared):
            return prepared
        chain_id = prepared.chain_info.chain_id

        self._enter(PipelineStage.NEGOTIATE_KEYS)
        keys = decode_payload(
            self.negotiate_required_keys(
                prepared.transaction, [signer.public_key.to_legacy_string()]
            ),
            RequiredKeysResult,
        )
        if is_failure(keys):
            return self._fail(PipelineStage.NEGOTIATE_KEYS, keys)
        required_keys = keys.value.required_keys
        self._warn_unheld_keys(required_keys, signer.public_key)

        stage = PipelineStage.SIGN
        self._enter(stage)
        try:
            # One signature per required key, all from the caller's key
            signed = SignedTransaction.from_unsigned(prepared.transaction, chain_id)
            for _ in required_keys:
                signed = sign_transaction(signed, signer, chain_id)

            stage = PipelineStage.PACK
            self._enter(stage)
            packed = pack_transaction(signed)
        except (SerializationError, SigningError, NameFormatError) as e:
            self.logger.error(f"Local failure at {stage.value}: {e}")
            return self._fail(stage, self._local_failure(stage, e))

        self._enter(PipelineStage.BROADCAST)
        result = self.transport.post(paths.PUSH_TRANSACTION, packed.to_request())
        if not result.success:
            return self._fail(PipelineStage.BROADCAST, result)

        self._enter(PipelineStage.DONE)
        self.logger.info(
            f"Pushed {contract_account}::{action_name} as {invoking_account} "
            f"with {len(signed.signatures)} signature(s)"
        )
        return result

    def _prepare(
        self,
        intent: ActionIntent,
        account: str,
        require_chain_id: bool
    ) -> Union[_Prepared, ResponseEnvelope]:
        self._enter(PipelineStage.FETCH_CHAIN_INFO)
        info = decode_payload(self.get_chain_info(), ChainInfo)
        if is_failure(info):
            return self._fail(PipelineStage.FETCH_CHAIN_INFO, info)
        if require_chain_id and info.value.chain_id is None:
            return self._fail(PipelineStage.FETCH_CHAIN_INFO, info.envelope)
        chain_info = info.value

        self._enter(PipelineStage.ENCODE_ACTION)
        encoded = decode_payload(
            self.abi_json_to_bin(intent.contract_account, intent.action_name, intent.args),
            AbiJsonToBinResult,
        )
        if is_failure(encoded):
            return self._fail(PipelineStage.ENCODE_ACTION, encoded)

        self._enter(PipelineStage.BUILD_TX)
        action = self.builder.encode_action(intent, account, encoded.value.binargs)
        transaction = self.builder.build(
            action, chain_info.head_block_id, chain_info.head_block_time
        )
        return _Prepared(chain_info=chain_info, transaction=transaction)

    def _validate_inputs(
        self,
        contract_account: str,
        action_name: str,
        invoking_account: str,
        private_key: Union[str, Signer],
        args: Dict[str, Any]
    ):
        for name in (contract_account, action_name, invoking_account):
            validate_name(name)
        if not isinstance(args, Mapping):
            raise TypeError(f"args must be a mapping, got {type(args).__name__}")

        if isinstance(private_key, str):
            signer: Signer = LocalSigner(private_key)
        elif hasattr(private_key, "sign_digest") and hasattr(private_key, "public_key"):
            signer = private_key
        else:
            raise KeyFormatError("private_key must be a key string or a Signer")

        intent = ActionIntent(
            contract_account=contract_account,
            action_name=action_name,
            args=dict(args),
        )
        return intent, signer

    def _warn_unheld_keys(self, required_keys: List[str], held: EosPublicKey) -> None:
        unheld = [key for key in required_keys if not self._same_key(key, held)]
        if unheld:
            rate_limited_log(
                f"Node requires {len(unheld)} key(s) not held by the signer "
                f"({', '.join(unheld)}); signing with {held} for every required key",
                level="warning",
                logger_instance=self.logger,
            )

    @staticmethod
    def _same_key(candidate: str, held: EosPublicKey) -> bool:
        try:
            return EosPublicKey.from_string(candidate) == held
        except KeyFormatError:
            return False

    @staticmethod
    def _local_failure(stage: PipelineStage, error: Exception) -> ResponseEnvelope:
        return ResponseEnvelope.failure(raw=json.dumps({
            "error": type(error).__name__,
            "message": str(error),
            "stage": stage.value,
        }))

    def _enter(self, stage: PipelineStage) -> None:
        self.logger.debug(f"Pipeline stage: {stage.value}")

    def _fail(self, stage: PipelineStage, envelope: ResponseEnvelope) -> ResponseEnvelope:
        self.logger.warning(
            f"Pipeline {PipelineStage.FAILED.value} at {stage.value} "
            f"(status={envelope.status_code}): {envelope.raw[:200]}"
        )
        return envelope
