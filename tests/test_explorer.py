import pytest
import requests

from rollout.explorer import EtherscanIndexer
from tests.conftest import CHAIN_ID, MERCHANT_TEMPLATE


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")

    def json(self):
        return self.payload


@pytest.fixture
def indexer():
    return EtherscanIndexer(api_key="test-key", chain_id=CHAIN_ID)


def test_from_environment(monkeypatch):
    monkeypatch.delenv("ETHERSCAN_API_KEY", raising=False)
    assert EtherscanIndexer.from_environment(CHAIN_ID) is None

    monkeypatch.setenv("ETHERSCAN_API_KEY", "test-key")
    indexer = EtherscanIndexer.from_environment(CHAIN_ID)
    assert indexer.api_key == "test-key"
    assert indexer.chain_id == CHAIN_ID


def test_is_indexed(monkeypatch, indexer):
    calls = list()

    def get(url, params, timeout):
        calls.append(params)
        return FakeResponse({"status": "1", "result": [{"contractAddress": MERCHANT_TEMPLATE}]})

    monkeypatch.setattr(requests, "get", get)
    assert indexer.is_indexed(MERCHANT_TEMPLATE)
    assert calls[0]["chainid"] == CHAIN_ID
    assert calls[0]["action"] == "getcontractcreation"
    assert calls[0]["contractaddresses"] == MERCHANT_TEMPLATE


@pytest.mark.parametrize(
    "response",
    [
        FakeResponse({"status": "0", "message": "No data found", "result": None}),
        FakeResponse({}, status_code=502),
    ],
)
def test_not_indexed(monkeypatch, indexer, response):
    monkeypatch.setattr(requests, "get", lambda url, params, timeout: response)
    assert not indexer.is_indexed(MERCHANT_TEMPLATE)


def test_query_error_is_not_indexed(monkeypatch, indexer):
    def get(url, params, timeout):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(requests, "get", get)
    assert not indexer.is_indexed(MERCHANT_TEMPLATE)
