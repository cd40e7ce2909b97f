"""HTTP surface: provider webhook and the operator dashboard API."""

from __future__ import annotations

import secrets
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    FastAPI,
    File,
    Form,
    Header,
    HTTPException,
    Request,
    UploadFile,
)
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict, Field

from .config import config
from .models import Conversation
from .runtime import Runtime, build_runtime

logger = config.get_logger(__name__)

EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'
ALLOWED_UPLOAD_SUFFIXES = (".pdf", ".txt")


class SendRequest(BaseModel):
    phone: str
    message: str


class SettingsUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response_mode: str | None = Field(default=None, alias="responseMode")
    default_response: str | None = Field(default=None, alias="defaultResponse")


def conversation_summary(conversation: Conversation) -> dict[str, Any]:
    """Return the dashboard list view of a conversation."""
    last = conversation.last_message
    return {
        "phone": conversation.remote_id,
        "name": conversation.name,
        "lastActivity": conversation.last_activity.isoformat(),
        "lastMessage": last.to_dict() if last is not None else None,
        "messageCount": len(conversation.messages),
        "state": conversation.state.value,
        "inactivityMessageSent": conversation.inactivity_warning_sent,
        "closed": conversation.closed,
    }


def _operator_guard(token: str | None):
    def require_operator(
        x_operator_token: str | None = Header(default=None),
    ) -> None:
        if not token:
            return
        if x_operator_token is None or not secrets.compare_digest(
            x_operator_token, token
        ):
            raise HTTPException(status_code=401, detail="Invalid operator token")

    return require_operator


def _api_router(runtime: Runtime, operator_token: str | None) -> APIRouter:  # noqa: C901
    router = APIRouter(
        prefix="/api",
        tags=["dashboard"],
        dependencies=[Depends(_operator_guard(operator_token))],
    )

    @router.get("/conversations")
    def list_conversations() -> list[dict[str, Any]]:
        return [
            conversation_summary(conversation)
            for conversation in runtime.conversations.list_conversations()
        ]

    @router.get("/conversations/{phone}")
    def get_conversation(phone: str) -> dict[str, Any]:
        conversation = runtime.conversations.get(phone)
        if conversation is None:
            raise HTTPException(status_code=404, detail="Conversation not found")
        return {**conversation.to_dict(), "state": conversation.state.value}

    @router.post("/send")
    def send_message(request: SendRequest) -> dict[str, Any]:
        try:
            delivered = runtime.service.send_operator_message(
                request.phone, request.message
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        return {"success": delivered}

    @router.get("/settings")
    def get_settings() -> dict[str, str]:
        return runtime.settings.get().to_dict()

    @router.post("/settings")
    def update_settings(update: SettingsUpdate) -> dict[str, str]:
        try:
            updated = runtime.settings.update(
                response_mode=update.response_mode,
                default_response=update.default_response,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        return updated.to_dict()

    @router.post("/upload-pdf")
    def upload_document(
        pdf_file: UploadFile = File(..., alias="pdfFile"),
        organization_id: str = Form(..., alias="organizationId"),
    ) -> dict[str, Any]:
        if runtime.pipeline is None:
            raise HTTPException(
                status_code=503, detail="Document indexing is not configured"
            )
        if not organization_id.strip():
            raise HTTPException(status_code=400, detail="organizationId is required")

        file_name = Path(pdf_file.filename or "").name
        if not file_name.lower().endswith(ALLOWED_UPLOAD_SUFFIXES):
            raise HTTPException(
                status_code=400, detail="Only PDF and TXT files are accepted"
            )

        content = pdf_file.file.read(config.MAX_UPLOAD_BYTES + 1)
        if len(content) > config.MAX_UPLOAD_BYTES:
            raise HTTPException(status_code=413, detail="File too large")

        runtime.upload_dir.mkdir(exist_ok=True, parents=True)
        target = runtime.upload_dir / f"{uuid.uuid4().hex}-{file_name}"
        target.write_bytes(content)
        logger.info(
            "Received upload %s (%d bytes) for %s",
            file_name,
            len(content),
            organization_id,
        )

        result = runtime.pipeline.ingest(target, organization_id, file_name)
        return {
            "success": result.success,
            "message": result.message,
            "recordsCount": result.chunk_count,
            "fileName": result.file_name or file_name,
        }

    @router.get("/documents/{phone}")
    def list_documents(phone: str) -> list[dict[str, object]]:
        if runtime.vector_store is None:
            raise HTTPException(status_code=503, detail="Vector index unavailable")
        return runtime.vector_store.summarize_documents(phone)

    @router.delete("/documents/{phone}")
    def delete_documents(phone: str) -> dict[str, int]:
        if runtime.vector_store is None:
            raise HTTPException(status_code=503, detail="Vector index unavailable")
        return {"deleted": runtime.vector_store.delete_owner(phone)}

    return router


def create_app(
    runtime: Runtime | None = None,
    *,
    operator_token: str | None = None,
    start_lifecycle: bool = True,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        runtime: Wired collaborators. If None, builds them from config.
        operator_token: Credential required on ``/api``. If None, reads
            OPERATOR_TOKEN; empty disables the check.
        start_lifecycle: Whether to run the idle sweep while serving.

    Returns:
        The configured application.
    """
    runtime = runtime or build_runtime()
    if operator_token is None:
        operator_token = config.get_operator_token()
    if not operator_token:
        logger.warning("OPERATOR_TOKEN not set; dashboard API is unauthenticated")

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if start_lifecycle:
            runtime.lifecycle.start()
        try:
            yield
        finally:
            if start_lifecycle:
                runtime.lifecycle.stop()

    app = FastAPI(title="RAG Relay", lifespan=lifespan)
    app.state.runtime = runtime

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"status": "ok", "missing": config.missing_settings()}

    @app.post("/webhook")
    async def webhook(request: Request, background_tasks: BackgroundTasks) -> Response:
        form = await request.form()
        inbound = runtime.transport.parse_inbound(
            {key: str(value) for key, value in form.items()}
        )
        if inbound is None:
            logger.info("Ignoring webhook without sender or body")
        else:
            background_tasks.add_task(runtime.service.handle_inbound, inbound)
        return Response(content=EMPTY_TWIML, media_type="application/xml")

    app.include_router(_api_router(runtime, operator_token))
    return app
