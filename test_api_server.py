from __future__ import annotations

import asyncio

import httpx
from fastapi.testclient import TestClient

from api.server import create_app
from capabilities.builtin import PriceAlertBook
from interaction.channel import OutboxChannel
from main import build_pipeline
from shared.settings import OrchestratorSettings


class DummySelector:
    def __init__(self, replies):
        self.replies = list(replies)

    async def generate(self, messages, policy, session_id=None):
        return self.replies.pop(0) if self.replies else {"kind": "text", "content": ""}


def _client(replies):
    def factory():
        return build_pipeline(
            settings=OrchestratorSettings(),
            channel=OutboxChannel(),
            model_selector=DummySelector(replies),
            handlers=PriceAlertBook().handlers(),
        )

    return TestClient(create_app(factory))


def test_health_and_capabilities():
    with _client([]) as client:
        assert client.get("/healthz").json() == {"status": "ok"}
        names = {c["name"] for c in client.get("/v1/capabilities").json()["data"]}
        assert names == {"create_price_alert", "price_alert", "view_price_alerts", "delete_price_alert"}


def test_message_turn_and_outbox():
    replies = [
        {"kind": "action", "name": "view_price_alerts", "arguments": {}},
        {"kind": "text", "content": ""},
        {"kind": "text", "content": "You have no alerts."},
    ]
    with _client(replies) as client:
        response = client.post("/v1/sessions/s1/messages", json={"text": "show my alerts"})
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert body["text"] == "You have no alerts."
        assert body["tasks"][0]["name"] == "view_price_alerts"

        outbox = client.get("/v1/sessions/s1/outbox").json()
        kinds = [item["kind"] for item in outbox["items"]]
        assert kinds == ["notice", "notice"]
        assert outbox["pending"] is None
        assert client.get("/v1/sessions/s1/outbox").json()["items"] == []


def test_unknown_confirmation_token_is_404():
    with _client([]) as client:
        response = client.post("/v1/sessions/s1/confirmations/confirm:nope")
        assert response.status_code == 404


def test_empty_message_rejected():
    with _client([]) as client:
        assert client.post("/v1/sessions/s1/messages", json={"text": ""}).status_code == 422


def test_confirmation_token_accepts_blocked_turn():
    replies = [
        {
            "kind": "action",
            "name": "create_price_alert",
            "arguments": {"tokenAddress": "0xabc", "targetPrice": 2, "condition": "above"},
        },
        {"kind": "text", "content": ""},
        {"kind": "text", "content": "Alert created."},
    ]
    book = PriceAlertBook()

    def factory():
        return build_pipeline(
            settings=OrchestratorSettings(),
            channel=OutboxChannel(),
            model_selector=DummySelector(replies),
            handlers=book.handlers(),
        )

    async def _run():
        app = create_app(factory)
        async with app.router.lifespan_context(app):
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
                turn = asyncio.create_task(client.post("/v1/sessions/s1/messages", json={"text": "alert me"}))

                prompt = None
                for _ in range(200):
                    outbox = (await client.get("/v1/sessions/s1/outbox")).json()
                    prompt = next((i for i in outbox["items"] if i["kind"] == "confirmation"), None)
                    if prompt is not None:
                        break
                    await asyncio.sleep(0.01)
                assert prompt is not None
                assert outbox["busy"] is True

                accepted = await client.post(f"/v1/sessions/s1/confirmations/{prompt['tokens']['accept']}")
                assert accepted.json() == {"session_id": "s1", "status": "delivered"}

                body = (await asyncio.wait_for(turn, timeout=5)).json()

        assert body["status"] == "success"
        assert body["text"] == "Alert created."
        assert book.view_price_alerts({}, "s1")["count"] == 1

    asyncio.run(_run())
