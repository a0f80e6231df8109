from decimal import Decimal

import httpx
import pytest

from server.server import create_app
from zerogkit import SyncClient

from tests.fakes import DEEPSEEK_PROVIDER, ENDPOINT, LLAMA_PROVIDER, TEST_ADDRESS

URL = ENDPOINT + "/chat/completions"


@pytest.fixture
def sync_client(config, registry):
    client = SyncClient(config, registry=registry)
    yield client
    client.close()


@pytest.fixture
def http(sync_client):
    app = create_app(sync_client)
    app.config["TESTING"] = True
    return app.test_client()


def test_health(http):
    body = http.get("/").get_json()
    assert body["address"] == TEST_ADDRESS
    assert "LIVE" in body["status"]


def test_ask_requires_prompt(http, factory):
    response = http.post("/ask", json={})
    assert response.status_code == 400
    assert factory.calls == 0


def test_blank_prompt_is_a_validation_error(http):
    response = http.post("/ask", json={"prompt": "   "})
    assert response.status_code == 400
    assert response.get_json()["kind"] == "validation"


def test_ask(respx_mock, http):
    respx_mock.post(URL).mock(
        return_value=httpx.Response(200, json={"choices": [{"message": {"content": "Paris"}}], "usage": {"total_tokens": 4}})
    )

    response = http.post("/ask", json={"prompt": "Capital of France?", "model": "deepseek"})

    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    assert body["response"] == "Paris"
    assert body["provider"] == DEEPSEEK_PROVIDER
    assert body["tokens_used"] == 4


def test_ask_without_funds(respx_mock, http):
    respx_mock.post(URL).mock(return_value=httpx.Response(402))

    response = http.post("/ask", json={"prompt": "hi"})

    assert response.status_code == 402
    assert response.get_json() == {
        "success": False,
        "error": "Insufficient funds for AI inference request (Status code: 402)",
        "kind": "insufficient_funds",
    }


def test_provider_failure_is_bad_gateway(respx_mock, http):
    respx_mock.post(URL).mock(return_value=httpx.Response(500))
    response = http.post("/ask", json={"prompt": "hi"})
    assert response.status_code == 502
    assert response.get_json()["kind"] == "network"


def test_balance(http):
    assert http.get("/balance").get_json() == {"balance": "2", "available": "1.5"}


def test_services(http):
    services = http.get("/services").get_json()["services"]
    assert [s["provider"] for s in services] == [LLAMA_PROVIDER, DEEPSEEK_PROVIDER]
    assert services[0]["model"] == "Llama-3-70B"
    assert services[0]["verifiability"] == "TeeML"


def test_closed_client_rejects_calls(sync_client):
    from zerogkit.client.exceptions import ConfigurationError

    sync_client.close()
    with pytest.raises(ConfigurationError):
        sync_client.get_balance()


@pytest.mark.parametrize("body", [[1, 2], "hello", 42])
def test_ask_rejects_non_object_bodies(http, factory, body):
    response = http.post("/ask", json=body)
    assert response.status_code == 400
    assert factory.calls == 0


def test_sync_client_locked_balance(sync_client):
    assert sync_client.get_locked_balance() == Decimal("0.5")
