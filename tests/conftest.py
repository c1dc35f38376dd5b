"""
Pytest fixtures for the EOS RPC SDK tests.
"""
import json
import time

import pytest

from eosrpc_sdk.client import EosRpcClient
from eosrpc_sdk.config import ClientConfig
from eosrpc_sdk.transport import transport as paths
from eosrpc_sdk._rate_limited_log import reset_rate_limited_log
from eosrpc_sdk.transport.stub_transport import StubTransport

# Constants for testing
TEST_NODE_URL = "https://node.example.com"
# Well-known development key pair shipped with nodeos
TEST_PRIV_KEY = "5KQwrPbwdL6PhXujxW37FSSQZ1JiwsST4cqQzDeyXtP79zkvFD3"
TEST_PUB_KEY = "EOS6MRyAjQq8ud7hVNYcfnVPJqcVpscN5So8BhtHuGYqET5GDW5CV"
TEST_CHAIN_ID = "cf057bbfb72640471fd910bcb67639c22df9f92470936cddc1ade0e2f2e7dc4f"
TEST_HEAD_BLOCK_ID = "00000001" + "ab" * 28
TEST_HEAD_BLOCK_TIME = "2023-01-01T00:00:00"
TRANSFER_ARGS = {"from": "a", "to": "b", "quantity": "0.0001 TOK", "memo": "x"}
TEST_BINARGS = "00000000000000100000000000000018010000000000000004544f4b0000000001"


@pytest.fixture(autouse=True)
def _fast_sleep(monkeypatch):
    monkeypatch.setattr(time, "sleep", lambda *_a, **_kw: None)


@pytest.fixture(autouse=True)
def _fresh_rate_limited_log():
    reset_rate_limited_log()
    yield
    reset_rate_limited_log()


@pytest.fixture
def chain_info_body():
    return {
        "server_version": "d1bc8d3",
        "chain_id": TEST_CHAIN_ID,
        "head_block_num": 1,
        "last_irreversible_block_num": 0,
        "head_block_id": TEST_HEAD_BLOCK_ID,
        "head_block_time": TEST_HEAD_BLOCK_TIME,
    }


@pytest.fixture
def config():
    return ClientConfig(node_url=TEST_NODE_URL)


@pytest.fixture
def node(requests_mock, chain_info_body):
    """A nodeos HTTP API that accepts every pipeline call"""
    base = TEST_NODE_URL
    requests_mock.post(base + paths.GET_INFO, json=chain_info_body)
    requests_mock.post(base + paths.ABI_JSON_TO_BIN, json={"binargs": TEST_BINARGS})

    def required_keys(request, context):
        return {"required_keys": request.json()["available_keys"]}

    requests_mock.post(base + paths.GET_REQUIRED_KEYS, json=required_keys)
    requests_mock.post(
        base + paths.PUSH_TRANSACTION,
        json={"transaction_id": "f" * 64, "processed": {"receipt": {"status": "executed"}}},
    )
    return requests_mock


@pytest.fixture
def client(config):
    return EosRpcClient(config=config)


@pytest.fixture
def stub(chain_info_body):
    return StubTransport(chain_info=chain_info_body)


@pytest.fixture
def stub_client(config, stub):
    return EosRpcClient(config=config, transport=stub)


def request_json(history, path):
    """Bodies of all recorded requests to ``path``"""
    return [json.loads(r.text) for r in history if r.path == path]
