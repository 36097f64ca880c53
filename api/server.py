"""
HTTP API for the Action Orchestrator.

Endpoints:
- POST /v1/sessions/{session_id}/messages        new turn, or the reply to a pending prompt
- POST /v1/sessions/{session_id}/confirmations/{token}   answer a confirmation by token
- GET  /v1/sessions/{session_id}/outbox          prompts and progress notices since last poll
- GET  /v1/capabilities
- GET  /healthz

Prompts raised during a turn are buffered in an OutboxChannel; a client
polls the outbox while its message request is still open and answers
through a second request.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Callable

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from interaction.channel import OutboxChannel
from main import Pipeline, build_pipeline
from shared.models import EntryRequest

logger = logging.getLogger(__name__)


class MessageRequest(BaseModel):
    text: str = Field(min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)


def _default_pipeline() -> Pipeline:
    return build_pipeline(channel=OutboxChannel())


def create_app(pipeline_factory: Callable[[], Pipeline] | None = None) -> FastAPI:
    factory = pipeline_factory or _default_pipeline

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        pipeline = factory()
        if not isinstance(pipeline.channel, OutboxChannel):
            raise RuntimeError("HTTP API requires an OutboxChannel")
        _app.state.pipeline = pipeline
        yield
        await pipeline.aclose()

    app = FastAPI(
        title="Action Orchestrator API",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.get("/healthz")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/v1/capabilities")
    def list_capabilities() -> dict[str, Any]:
        return {"object": "list", "data": app.state.pipeline.registry.catalog()}

    @app.post("/v1/sessions/{session_id}/messages")
    async def post_message(session_id: str, request: MessageRequest) -> dict[str, Any]:
        orchestrator = app.state.pipeline.orchestrator
        entry = EntryRequest(
            session_id=session_id,
            input_text=request.text.strip(),
            metadata={"source": "http", **request.metadata},
        )
        result = await orchestrator.handle(entry)
        return result.model_dump(mode="json")

    @app.post("/v1/sessions/{session_id}/confirmations/{token}")
    async def post_confirmation(session_id: str, token: str) -> dict[str, Any]:
        if not app.state.pipeline.orchestrator.deliver_token(session_id, token):
            raise HTTPException(status_code=404, detail="No pending confirmation for this token.")
        return {"session_id": session_id, "status": "delivered"}

    @app.get("/v1/sessions/{session_id}/outbox")
    async def drain_outbox(session_id: str) -> dict[str, Any]:
        pipeline = app.state.pipeline
        items = pipeline.channel.drain(session_id)
        return {
            "session_id": session_id,
            "pending": pipeline.pending.pending_kind(session_id),
            "busy": pipeline.orchestrator.is_busy(session_id),
            "items": [item.model_dump(mode="json") for item in items],
        }

    return app


app = create_app()


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("API_PORT", "8000")))
