import asyncio
import json
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from gitshare.config.settings import Settings, get_settings
from gitshare.schemas import Change, ChangeSet, SyncProgress, SyncResult
from gitshare.services.sync_controller import SyncController
from gitshare.services.sync_controller_factory import create_sync_controller_from_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gitshare", tags=["gitshare"])

# Global sync controller instance
_sync_controller: Optional[SyncController] = None

# A working copy takes one sync at a time
_sync_lock = threading.Lock()


def get_sync_controller(settings: Settings = Depends(get_settings)) -> SyncController:
    """Get or create sync controller instance."""
    global _sync_controller
    if _sync_controller is None:
        try:
            _sync_controller = create_sync_controller_from_settings(settings)
        except Exception as e:
            raise HTTPException(
                status_code=500,
                detail=f"Failed to initialize sync controller: {str(e)}",
            )
    return _sync_controller


class SyncUpRequest(BaseModel):
    message: Optional[str] = None


def _sync_up(controller: SyncController, message: Optional[str] = None, on_progress=None) -> SyncResult:
    with _sync_lock:
        success = controller.sync_up(message=message, on_progress=on_progress)
    return SyncResult(
        success=success, error=controller.error, merge_outcome=controller.merge_outcome
    )


def _sync_down(controller: SyncController, on_progress=None) -> SyncResult:
    with _sync_lock:
        success = controller.sync_down(on_progress=on_progress)
    return SyncResult(
        success=success, error=controller.error, merge_outcome=controller.merge_outcome
    )


@router.get("/status", response_model=Dict[str, Any])
def get_status(controller: SyncController = Depends(get_sync_controller)):
    """Get working copy status."""
    return {
        "name": controller.name,
        "branch": controller.current_branch(),
        "revision": controller.current_revision(),
        "in_merge": controller.in_merge,
        "has_unsynced_changes": controller.has_unsynced_changes,
        "size": controller.size,
        "history_size": controller.history_size,
        "error": controller.error.value,
        "merge_outcome": controller.merge_outcome.value if controller.merge_outcome else None,
    }


@router.get("/changes", response_model=List[Change])
def get_changes(controller: SyncController = Depends(get_sync_controller)):
    """List local changes not yet committed."""
    return controller.unsynced_changes()


@router.get("/changesets", response_model=List[ChangeSet])
def get_change_sets(
    path: Optional[str] = None,
    controller: SyncController = Depends(get_sync_controller),
):
    """Recent history, or the history of a single file when `path` is given."""
    return controller.get_change_sets(path)


@router.post("/sync-up", response_model=SyncResult)
def sync_up(
    request: Optional[SyncUpRequest] = None,
    controller: SyncController = Depends(get_sync_controller),
):
    """Commit local changes and push them."""
    return _sync_up(controller, message=request.message if request else None)


@router.post("/sync-down", response_model=SyncResult)
def sync_down(controller: SyncController = Depends(get_sync_controller)):
    """Fetch and merge remote changes."""
    return _sync_down(controller)


def _stream(run: Callable[[Callable[[SyncProgress], None]], SyncResult], label: str) -> StreamingResponse:
    async def generate_progress():
        loop = asyncio.get_running_loop()
        events: asyncio.Queue = asyncio.Queue()

        def on_progress(progress: SyncProgress) -> None:
            loop.call_soon_threadsafe(events.put_nowait, progress)

        yield f"data: {json.dumps({'type': 'status', 'message': f'Starting {label}...', 'progress': 0})}\n\n"

        task = loop.run_in_executor(None, run, on_progress)
        while not task.done() or not events.empty():
            try:
                progress = await asyncio.wait_for(events.get(), timeout=0.1)
            except asyncio.TimeoutError:
                continue
            yield f"data: {json.dumps({'type': 'progress', 'progress': progress.percentage, 'speed': progress.speed})}\n\n"

        try:
            result = await task
        except Exception as e:
            logger.exception("%s failed", label)
            yield f"data: {json.dumps({'type': 'error', 'message': f'{label} failed: {str(e)}'})}\n\n"
            return

        yield f"data: {json.dumps({'type': 'complete', **result.model_dump(mode='json')})}\n\n"

    return StreamingResponse(
        generate_progress(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type",
        },
    )


@router.post("/sync-up-stream")
async def sync_up_stream(controller: SyncController = Depends(get_sync_controller)):
    """Sync up with streaming progress updates."""
    return _stream(lambda on_progress: _sync_up(controller, on_progress=on_progress), "sync up")


@router.post("/sync-down-stream")
async def sync_down_stream(controller: SyncController = Depends(get_sync_controller)):
    """Sync down with streaming progress updates."""
    return _stream(lambda on_progress: _sync_down(controller, on_progress=on_progress), "sync down")
