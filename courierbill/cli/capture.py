"""Capture session command handlers used by the unified CLI."""

import argparse
import asyncio
from pathlib import Path

from courierbill.application.capture import CaptureSessionController, CaptureSessionError
from courierbill.cli.common import document_service, fail, open_store, read_page, settings_or_exit
from courierbill.domain.capture import CaptureSession
from courierbill.runtime import get_logger

logger = get_logger(__name__)


def build_controller(service_url: str | None = None) -> CaptureSessionController:
    settings = settings_or_exit()
    return CaptureSessionController(
        open_store(),
        document_service(settings, service_url),
        inter_chunk_delay=settings.inter_chunk_delay,
    )


def _print_session(session: CaptureSession | None) -> None:
    if session is None:
        print("No active capture session.")
        return
    print(f"Session {session.id} ({session.ai_mode} mode)")
    print(f"  Folder:     {session.folder_name}")
    print(f"  Captured:   {session.total_captured} manifest(s), {len(session.current_chunk)} page(s) in progress")
    print(f"  Queued:     {len(session.pending_chunks)}")
    print(f"  Processed:  {session.processed_count}")
    state = "processing" if session.is_processing else "paused" if session.is_paused else "idle"
    print(f"  State:      {state}")
    print(f"  Status:     {session.status_log}")


def cmd_capture(args: argparse.Namespace) -> None:
    """Dispatch ``capture <action>``."""
    controller = build_controller(getattr(args, "service_url", None))
    action = args.capture_action or "status"

    try:
        if action == "start":
            session = controller.start(args.mode)
            print(f"Started capture session in folder {session.folder_name}")
        elif action == "add":
            session = controller.session()
            for image in args.images:
                session = controller.capture_page(read_page(Path(image)))
            if args.finish:
                session = controller.finish_chunk()
            if session is not None:
                print(session.status_log)
        elif action == "finish":
            print(controller.finish_chunk().status_log)
        elif action == "process":
            session = asyncio.run(controller.process_queue())
            print(session.status_log)
            if session.pending_chunks and not session.is_paused:
                fail(f"{len(session.pending_chunks)} manifest(s) left in the queue")
        elif action == "pause":
            print(controller.pause().status_log)
        elif action == "close":
            result = controller.close()
            if result.status == "pending_work":
                print(f"Warning: {result.message}")
            else:
                print(result.message)
        elif action == "clear":
            controller.clear()
            print("Capture session cleared.")
        else:
            _print_session(controller.session())
    except CaptureSessionError as exc:
        fail(str(exc))


def cmd_serve(args: argparse.Namespace) -> None:
    """Start the FastAPI capture server."""
    import uvicorn

    from courierbill.application.capture.server import create_app

    controller = build_controller(args.service_url)
    print(f"Starting capture server on {args.host}:{args.port}")
    print(f"Upload pages to: http://{args.host}:{args.port}/capture/page")
    print("Press Ctrl+C to stop")

    uvicorn.run(create_app(controller), host=args.host, port=args.port)
