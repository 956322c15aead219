import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from pydantic import BaseModel

from snapshop.core.capture import BytesCaptureSource
from snapshop.core.links import build_shopping_links
from snapshop.core.scanner import ScanInProgressError, ScanOrchestrator
from snapshop.schemas.scan import ScanState, ScanStateOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["scan"])


class CustomKeyIn(BaseModel):
    key: str


def get_orchestrator(request: Request) -> ScanOrchestrator:
    return request.app.state.orchestrator


def state_out(state: ScanState) -> ScanStateOut:
    return ScanStateOut(
        phase=state.phase,
        view=state.view,
        progress=state.progress,
        is_scanning=state.is_scanning,
        error_message=state.error_message,
        show_settings=state.show_settings,
        has_custom_key=bool(state.custom_key),
        result=state.result,
        links=build_shopping_links(state.result.name) if state.result else [],
    )


def _busy() -> HTTPException:
    return HTTPException(status_code=409, detail={"error": "scan_in_progress", "message": "A scan is already running"})


@router.post("/scan", response_model=ScanStateOut)
async def scan(
    request: Request,
    image: Optional[UploadFile] = File(default=None),
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
):
    """
    Run one full scan. With an image the frame goes to Gemini; without one
    the server's default source (CAPTURE_FILE) is used, or demo mode if none.
    """
    if orchestrator.busy:
        raise _busy()

    if image is not None:
        orchestrator.capture_source = BytesCaptureSource(await image.read(), image.content_type or "image/jpeg")
    else:
        orchestrator.capture_source = request.app.state.default_capture_source
    orchestrator.open_camera()

    try:
        state = await orchestrator.scan()
    except ScanInProgressError:
        raise _busy()

    return state_out(state)


@router.get("/scan/state", response_model=ScanStateOut)
def scan_state(orchestrator: ScanOrchestrator = Depends(get_orchestrator)):
    return state_out(orchestrator.state)


@router.post("/scan/reset", response_model=ScanStateOut)
def scan_reset(orchestrator: ScanOrchestrator = Depends(get_orchestrator)):
    orchestrator.reset()
    return state_out(orchestrator.state)


@router.put("/settings/key", response_model=ScanStateOut)
def set_key(body: CustomKeyIn, orchestrator: ScanOrchestrator = Depends(get_orchestrator)):
    orchestrator.set_custom_key(body.key)
    orchestrator.close_settings()
    logger.info("settings: custom key %s", "set" if orchestrator.state.custom_key else "cleared")
    return state_out(orchestrator.state)


@router.delete("/settings/key", response_model=ScanStateOut)
def clear_key(orchestrator: ScanOrchestrator = Depends(get_orchestrator)):
    orchestrator.set_custom_key(None)
    return state_out(orchestrator.state)
