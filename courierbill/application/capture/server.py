"""FastAPI server that lets a phone feed pages into the active capture session."""

from __future__ import annotations

from typing import Any

from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import JSONResponse

from courierbill.application.capture import CaptureSessionController, CaptureSessionError
from courierbill.document.image_helpers import page_from_bytes
from courierbill.domain.capture import AI_MODES, CaptureSession
from courierbill.runtime.logging import get_logger

logger = get_logger(__name__)

DEFAULT_PORT = 8000


def session_summary(session: CaptureSession | None) -> dict[str, Any]:
    """Session state without page payloads."""
    if session is None:
        return {"active": False}
    return {
        "active": True,
        "id": session.id,
        "folderId": session.folder_id,
        "folderName": session.folder_name,
        "aiMode": session.ai_mode,
        "pendingChunks": len(session.pending_chunks),
        "currentChunkPages": len(session.current_chunk),
        "totalCaptured": session.total_captured,
        "processedCount": session.processed_count,
        "isProcessing": session.is_processing,
        "isPaused": session.is_paused,
        "statusLog": session.status_log,
    }


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"status": "error", "message": message}, status_code=status_code)


def create_app(controller: CaptureSessionController) -> FastAPI:
    """Build the capture server around one session controller."""
    app = FastAPI(title="Manifest Capture")

    async def drain() -> None:
        try:
            await controller.process_queue()
        except CaptureSessionError as e:
            logger.warning("Capture processing not started: %s", e)

    @app.post("/capture/start")
    async def start_session(request: Request) -> JSONResponse:
        try:
            body = await request.json() if await request.body() else {}
        except ValueError:
            return _error("Request body is not valid JSON", 400)
        ai_mode = body.get("aiMode", "default") if isinstance(body, dict) else "default"
        if ai_mode not in AI_MODES:
            return _error(f"Unknown AI mode: {ai_mode}", 400)
        try:
            session = controller.start(ai_mode)
        except CaptureSessionError as e:
            return _error(str(e), 409)
        return JSONResponse({"status": "success", "session": session_summary(session)})

    @app.post("/capture/page")
    async def upload_page(request: Request) -> JSONResponse:
        """Append one uploaded image to the current chunk."""
        form = await request.form()

        file = None
        for key, value in form.items():
            logger.debug("Form field: key=%r, type=%s", key, type(value))
            if hasattr(value, "read"):
                file = value
                break

        if not file:
            return _error("No file found in request", 400)

        contents = await file.read()
        mime_type = getattr(file, "content_type", None) or "image/jpeg"
        try:
            session = controller.capture_page(page_from_bytes(contents, mime_type))
        except CaptureSessionError as e:
            return _error(str(e), 409)
        logger.info("Captured page (%d bytes) into session %s", len(contents), session.id)
        return JSONResponse({"status": "success", "session": session_summary(session)})

    @app.post("/capture/finish")
    async def finish_chunk() -> JSONResponse:
        try:
            session = controller.finish_chunk()
        except CaptureSessionError as e:
            return _error(str(e), 409)
        return JSONResponse({"status": "success", "session": session_summary(session)})

    @app.post("/capture/process")
    async def process(background_tasks: BackgroundTasks) -> JSONResponse:
        """Start draining the queue after the response is sent."""
        session = controller.session()
        if session is None:
            return _error("No active capture session", 409)
        if controller.is_draining:
            return _error("Processing is already running", 409)
        background_tasks.add_task(drain)
        return JSONResponse({"status": "accepted", "session": session_summary(session)}, status_code=202)

    @app.post("/capture/pause")
    async def pause() -> JSONResponse:
        try:
            session = controller.pause()
        except CaptureSessionError as e:
            return _error(str(e), 409)
        return JSONResponse({"status": "success", "session": session_summary(session)})

    @app.get("/capture/status")
    async def status() -> dict[str, Any]:
        return session_summary(controller.session())

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok"}

    return app
