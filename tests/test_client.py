"""
Tests for EosRpcClient and the transaction pipeline.
"""
import hashlib
import json
import logging
import struct

import pytest
import requests

from eosrpc_sdk.client import EOSIO_TOKEN_CONTRACT, EosRpcClient, PipelineStage
from eosrpc_sdk.config import ClientConfig
from eosrpc_sdk.crypto import EosPrivateKey, EosPublicKey, EosSignature, LocalSigner
from eosrpc_sdk.envelope import ResponseEnvelope
from eosrpc_sdk.exceptions import ConfigError, KeyFormatError, NameFormatError
from eosrpc_sdk.models import ActionIntent, UnsignedTransaction
from eosrpc_sdk.serialization import UNREPRESENTABLE_EXPIRATION, signing_digest
from eosrpc_sdk.transport import transport as paths
from eosrpc_sdk.transport.stub_transport import StubTransport

from conftest import (
    TEST_BINARGS, TEST_CHAIN_ID, TEST_HEAD_BLOCK_ID, TEST_NODE_URL, TEST_PRIV_KEY,
    TEST_PUB_KEY, TRANSFER_ARGS, request_json
)

PIPELINE_PATHS = [
    paths.GET_INFO,
    paths.ABI_JSON_TO_BIN,
    paths.GET_REQUIRED_KEYS,
    paths.PUSH_TRANSACTION,
]
TRANSFER_INTENT = ActionIntent(contract_account="eosio.token", action_name="transfer", args=TRANSFER_ARGS)


def push_transfer(client, key=TEST_PRIV_KEY, account="a"):
    return client.push_transaction(EOSIO_TOKEN_CONTRACT, "transfer", account, key, TRANSFER_ARGS)


class TestInit:

    def test_init_with_node_url(self, stub):
        client = EosRpcClient(node_url=TEST_NODE_URL, transport=stub)
        assert client.node_url == TEST_NODE_URL
        assert stub.node_url == TEST_NODE_URL

    def test_node_url_overrides_config(self, config, stub):
        client = EosRpcClient(node_url="https://other.example.com/", config=config, transport=stub)
        assert client.node_url == "https://other.example.com"
        assert client.config.timeout == config.timeout

    def test_insecure_url_rejected(self, stub):
        with pytest.raises(ConfigError):
            EosRpcClient(node_url="http://node.example.com", transport=stub)

    def test_localhost_allowed_over_http(self, stub):
        client = EosRpcClient(node_url="http://127.0.0.1:8888", transport=stub)
        assert client.node_url == "http://127.0.0.1:8888"

    def test_defaults_from_environment(self, monkeypatch, stub):
        monkeypatch.setenv("EOSRPC_NODE_URL", "https://env.example.com")
        monkeypatch.setenv("EOSRPC_PERMISSION", "owner")
        client = EosRpcClient(transport=stub)
        assert client.node_url == "https://env.example.com"
        assert client.builder.permission == "owner"

    def test_context_manager_closes_transport(self, config):
        with EosRpcClient(config=config) as client:
            assert client.transport.session is not None
        assert client.transport.session is None

    def test_prefer_stub(self):
        client = EosRpcClient(config=ClientConfig(node_url=TEST_NODE_URL, prefer_stub=True))
        assert isinstance(client.transport, StubTransport)


class TestPushTransactionHttp:

    def test_happy_path(self, client, node):
        result = push_transfer(client)

        assert result.success is True
        assert json.loads(result.payload)["transaction_id"] == "f" * 64
        assert [r.path for r in node.request_history] == PIPELINE_PATHS

    def test_abi_json_to_bin_request(self, client, node):
        push_transfer(client)
        body = request_json(node.request_history, paths.ABI_JSON_TO_BIN)[0]
        assert body == {"code": "eosio.token", "action": "transfer", "args": TRANSFER_ARGS}

    def test_required_keys_request(self, client, node):
        push_transfer(client)
        body = request_json(node.request_history, paths.GET_REQUIRED_KEYS)[0]

        assert body["available_keys"] == [TEST_PUB_KEY]
        tx = body["transaction"]
        assert tx["expiration"] == "2023-01-01T00:00:30"
        assert tx["ref_block_num"] == 1
        assert tx["signatures"] == []
        assert tx["actions"] == [{
            "account": "eosio.token",
            "name": "transfer",
            "authorization": [{"actor": "a", "permission": "active"}],
            "data": TEST_BINARGS,
        }]

    def test_push_request_is_signed_by_caller(self, client, node):
        push_transfer(client)
        body = request_json(node.request_history, paths.PUSH_TRANSACTION)[0]

        assert body["compression"] == "none"
        assert body["packed_context_free_data"] == ""
        assert len(body["signatures"]) == 1

        # The digest of the transaction the node was asked about must match
        # what was signed and pushed.
        builder = client.builder
        intent_tx = builder.build(
            builder.encode_action(TRANSFER_INTENT, "a", TEST_BINARGS),
            TEST_HEAD_BLOCK_ID,
            "2023-01-01T00:00:00",
        )
        digest = signing_digest(intent_tx, TEST_CHAIN_ID)
        signature = EosSignature.from_string(body["signatures"][0])
        assert signature.recover(digest) == EosPublicKey.from_string(TEST_PUB_KEY)

    def test_node_error_is_returned_as_is(self, client, node):
        error_body = '{"code":500,"message":"Internal Service Error","error":{"what":"Missing required authority"}}'
        node.post(TEST_NODE_URL + paths.PUSH_TRANSACTION, status_code=500, text=error_body)

        result = push_transfer(client)

        assert result.success is False
        assert result.raw == error_body
        assert result.status_code == 500

    def test_get_info_error_stops_pipeline(self, client, node):
        node.post(TEST_NODE_URL + paths.GET_INFO, status_code=503, text="unavailable")

        result = push_transfer(client)

        assert result.success is False
        assert result.raw == "unavailable"
        assert [r.path for r in node.request_history] == [paths.GET_INFO]

    def test_connection_error_becomes_failed_envelope(self, client, node):
        node.post(TEST_NODE_URL + paths.ABI_JSON_TO_BIN, exc=requests.exceptions.ConnectionError("refused"))

        result = push_transfer(client)

        assert result.success is False
        assert result.status_code is None
        assert json.loads(result.raw)["path"] == paths.ABI_JSON_TO_BIN
        assert [r.path for r in node.request_history] == PIPELINE_PATHS[:2]


class TestFailurePropagation:

    @pytest.mark.parametrize("failing_path,expected_calls", [
        (paths.GET_INFO, PIPELINE_PATHS[:1]),
        (paths.ABI_JSON_TO_BIN, PIPELINE_PATHS[:2]),
        (paths.GET_REQUIRED_KEYS, PIPELINE_PATHS[:3]),
        (paths.PUSH_TRANSACTION, PIPELINE_PATHS),
    ])
    def test_failing_stage_envelope_is_returned(self, stub_client, stub, failing_path, expected_calls):
        failing = ResponseEnvelope.failure('{"code":500}', status_code=500)
        stub.set_response(failing_path, failing)

        result = push_transfer(stub_client)

        assert result is failing
        assert [path for path, _ in stub.calls] == expected_calls

    @pytest.mark.parametrize("path,payload", [
        (paths.GET_INFO, {"head_block_time": "2023-01-01T00:00:00"}),
        (paths.GET_INFO, {"head_block_id": TEST_HEAD_BLOCK_ID}),
        (paths.GET_INFO, {"head_block_id": "zz", "head_block_time": "2023-01-01T00:00:00"}),
        (paths.ABI_JSON_TO_BIN, {}),
        (paths.ABI_JSON_TO_BIN, {"binargs": "not hex"}),
        (paths.GET_REQUIRED_KEYS, {}),
    ])
    def test_incomplete_payload_returns_that_envelope(self, stub_client, stub, path, payload):
        incomplete = ResponseEnvelope.ok(payload)
        stub.set_response(path, incomplete)

        result = push_transfer(stub_client)

        assert result is incomplete
        assert stub.call_count(paths.PUSH_TRANSACTION) == 0

    def test_missing_chain_id_fails_before_encoding(self, stub_client, stub, chain_info_body):
        del chain_info_body["chain_id"]
        info = ResponseEnvelope.ok(chain_info_body)
        stub.set_response(paths.GET_INFO, info)

        assert push_transfer(stub_client) is info
        assert stub.call_count(paths.ABI_JSON_TO_BIN) == 0

    @pytest.mark.parametrize("head_block_time", [
        "not a time",
        "1969-12-31T23:59:00",
        "2106-02-07T06:28:20",
        "9999-12-31T23:59:50",
    ])
    def test_unrepresentable_head_block_time_is_left_to_the_node(
        self, stub_client, stub, chain_info_body, head_block_time
    ):
        chain_info_body["head_block_time"] = head_block_time
        stub.set_response(paths.GET_INFO, ResponseEnvelope.ok(chain_info_body))
        rejected = ResponseEnvelope.failure('{"code":500,"error":{"name":"expired_tx_exception"}}', status_code=500)
        stub.set_response(paths.PUSH_TRANSACTION, rejected)

        result = push_transfer(stub_client)

        assert result is rejected
        assert stub.call_count(paths.PUSH_TRANSACTION) == 1
        packed = bytes.fromhex(stub.bodies(paths.PUSH_TRANSACTION)[0]["packed_trx"])
        assert struct.unpack_from("<I", packed, 0)[0] == UNREPRESENTABLE_EXPIRATION

    def test_failing_signer_becomes_sign_envelope(self, stub_client, stub):
        class UnreachableSigner:
            public_key = EosPrivateKey.from_string(TEST_PRIV_KEY).public_key

            def sign_digest(self, digest):
                raise ConnectionError("hsm unreachable")

        result = push_transfer(stub_client, key=UnreachableSigner())

        assert result.success is False
        raw = json.loads(result.raw)
        assert raw["stage"] == PipelineStage.SIGN.value
        assert raw["error"] == "SigningError"
        assert "hsm unreachable" in raw["message"]
        assert stub.call_count(paths.PUSH_TRANSACTION) == 0

    def test_failure_is_logged(self, stub_client, stub, caplog):
        stub.set_response(paths.GET_INFO, ResponseEnvelope.failure("down", status_code=502))
        with caplog.at_level(logging.WARNING, logger="eosrpc_sdk.client"):
            push_transfer(stub_client)
        assert any("FETCH_CHAIN_INFO" in r.message for r in caplog.records)


class TestPushTransactionStub:

    def test_one_call_per_stage(self, stub_client, stub):
        result = push_transfer(stub_client)

        assert result.success is True
        for path in PIPELINE_PATHS:
            assert stub.call_count(path) == 1

    def test_transaction_id_matches_packed(self, stub_client, stub):
        result = push_transfer(stub_client)
        push_body = stub.bodies(paths.PUSH_TRANSACTION)[0]
        expected = hashlib.sha256(bytes.fromhex(push_body["packed_trx"])).hexdigest()
        assert json.loads(result.payload)["transaction_id"] == expected

    def test_multiple_required_keys_sign_once_each(self, config, caplog):
        other = str(EosPrivateKey.generate().public_key)
        stub = StubTransport(required_keys=[TEST_PUB_KEY, other])
        client = EosRpcClient(config=config, transport=stub)

        with caplog.at_level(logging.WARNING, logger="eosrpc_sdk.client"):
            result = push_transfer(client)

        assert result.success is True
        signatures = stub.bodies(paths.PUSH_TRANSACTION)[0]["signatures"]
        assert len(signatures) == 2
        assert any(other in r.message for r in caplog.records)

    def test_unheld_key_warning_is_rate_limited(self, config, caplog):
        other = str(EosPrivateKey.generate().public_key)
        stub = StubTransport(required_keys=[other])
        client = EosRpcClient(config=config, transport=stub)

        with caplog.at_level(logging.WARNING, logger="eosrpc_sdk.client"):
            push_transfer(client)
            push_transfer(client)

        assert len([r for r in caplog.records if other in r.message]) == 1

    def test_no_required_keys_pushes_unsigned(self, config):
        stub = StubTransport(required_keys=[])
        client = EosRpcClient(config=config, transport=stub)

        result = push_transfer(client)

        # The stub node rejects a transaction without signatures
        assert result.success is False
        assert stub.bodies(paths.PUSH_TRANSACTION)[0]["signatures"] == []

    def test_custom_signer(self, stub_client, stub):
        signer = LocalSigner(EosPrivateKey.generate())
        result = push_transfer(stub_client, key=signer)

        assert result.success is True
        assert stub.bodies(paths.GET_REQUIRED_KEYS)[0]["available_keys"] == [str(signer.public_key)]

    def test_custom_permission(self, stub):
        config = ClientConfig(node_url=TEST_NODE_URL, permission="owner")
        client = EosRpcClient(config=config, transport=stub)

        push_transfer(client)

        action = stub.bodies(paths.GET_REQUIRED_KEYS)[0]["transaction"]["actions"][0]
        assert action["authorization"] == [{"actor": "a", "permission": "owner"}]


class TestInputValidation:

    @pytest.mark.parametrize("contract,action,account", [
        ("Eosio.token", "transfer", "a"),
        ("eosio.token", "transfer!", "a"),
        ("eosio.token", "transfer", "averyveryverylongname"),
        ("eosio.token", "transfer", ""),
    ])
    def test_invalid_names_raise_before_any_call(self, stub_client, stub, contract, action, account):
        with pytest.raises(NameFormatError):
            stub_client.push_transaction(contract, action, account, TEST_PRIV_KEY, TRANSFER_ARGS)
        assert stub.calls == []

    def test_invalid_key_raises_before_any_call(self, stub_client, stub):
        with pytest.raises(KeyFormatError):
            push_transfer(stub_client, key="not-a-key")
        assert stub.calls == []

    def test_non_signer_object_rejected(self, stub_client, stub):
        with pytest.raises(KeyFormatError):
            push_transfer(stub_client, key=object())
        assert stub.calls == []

    def test_args_must_be_mapping(self, stub_client, stub):
        with pytest.raises(TypeError):
            stub_client.push_transaction("eosio.token", "transfer", "a", TEST_PRIV_KEY, ["a", "b"])
        assert stub.calls == []


class TestGetRequiredKeys:

    def test_returns_node_answer(self, stub_client, stub):
        result = stub_client.get_required_keys("eosio.token", "transfer", "a", TEST_PRIV_KEY, TRANSFER_ARGS)

        assert result.success is True
        assert result.json_payload() == {"required_keys": [TEST_PUB_KEY]}
        assert stub.call_count(paths.PUSH_TRANSACTION) == 0

    def test_tolerates_missing_chain_id(self, stub_client, stub, chain_info_body):
        del chain_info_body["chain_id"]
        stub.set_response(paths.GET_INFO, ResponseEnvelope.ok(chain_info_body))

        result = stub_client.get_required_keys("eosio.token", "transfer", "a", TEST_PRIV_KEY, TRANSFER_ARGS)

        assert result.success is True

    def test_failure_is_returned_as_is(self, stub_client, stub):
        failing = ResponseEnvelope.failure("nope", status_code=400)
        stub.set_response(paths.GET_REQUIRED_KEYS, failing)

        assert stub_client.get_required_keys(
            "eosio.token", "transfer", "a", TEST_PRIV_KEY, TRANSFER_ARGS
        ) is failing

    def test_negotiate_required_keys_directly(self, stub_client, stub):
        tx = UnsignedTransaction(
            actions=(),
            reference_block_id=TEST_HEAD_BLOCK_ID,
            expiration="2023-01-01T00:00:30",
        )
        result = stub_client.negotiate_required_keys(tx, [TEST_PUB_KEY])
        assert result.json_payload() == {"required_keys": [TEST_PUB_KEY]}
        assert stub.bodies(paths.GET_REQUIRED_KEYS)[0]["transaction"]["actions"] == []


class TestReads:

    def test_get_chain_info(self, client, node, chain_info_body):
        result = client.get_chain_info()
        assert result.success is True
        assert result.json_payload() == chain_info_body

    def test_get_block(self, stub_client, stub):
        stub_client.get_block(42)
        assert stub.bodies(paths.GET_BLOCK) == [{"block_num_or_id": 42}]

    def test_get_account(self, stub_client, stub):
        result = stub_client.get_account("alice")
        assert result.json_payload()["account_name"] == "alice"
        assert stub.bodies(paths.GET_ACCOUNT) == [{"account_name": "alice"}]

    def test_get_key_accounts_sends_public_key_only(self, stub_client, stub):
        stub_client.get_key_accounts(TEST_PRIV_KEY)
        assert stub.bodies(paths.GET_KEY_ACCOUNTS) == [{"public_key": TEST_PUB_KEY}]

    def test_get_actions_defaults(self, stub_client, stub):
        stub_client.get_actions("alice")
        assert stub.bodies(paths.GET_ACTIONS) == [{"account_name": "alice", "pos": -1, "offset": -20}]

    def test_get_table_rows(self, stub_client, stub):
        stub_client.get_table_rows("alice", "eosio.token", "accounts", limit=5, lower_bound="a")
        assert stub.bodies(paths.GET_TABLE_ROWS) == [{
            "scope": "alice",
            "code": "eosio.token",
            "table": "accounts",
            "json": True,
            "limit": 5,
            "lower_bound": "a",
        }]

    def test_get_currency_balance(self, stub_client, stub):
        stub_client.get_currency_balance("alice", "eosio.token", "EOS")
        assert stub.bodies(paths.GET_CURRENCY_BALANCE) == [
            {"account": "alice", "code": "eosio.token", "symbol": "EOS"}
        ]

    def test_abi_json_to_bin(self, stub_client):
        result = stub_client.abi_json_to_bin("eosio.token", "transfer", {"memo": "x"})
        assert bytes.fromhex(result.json_payload()["binargs"]) == b'{"memo":"x"}'

    def test_read_failure_is_returned(self, client, requests_mock):
        requests_mock.post(TEST_NODE_URL + paths.GET_ACCOUNT, status_code=500, text="unknown key")
        result = client.get_account("nobody")
        assert result.success is False
        assert result.raw == "unknown key"
