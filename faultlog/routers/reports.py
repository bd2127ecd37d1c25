import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from .. import config, schemas
from ..dependencies import get_report_store, flag_persist_warning
from ..services.geolocation import QueuePositionSource, StaticPositionSource, sample_best_position
from ..services.reports import ReportStore

router = APIRouter(tags=["Segnalazioni"])
logger = logging.getLogger(__name__)


def read_uploads(files):
    """Camera and gallery uploads end up here alike."""
    return [schemas.RawPhoto(filename=f.filename or "photo.jpg", content=f.file.read()) for f in files or []]


def _position(lat, lng):
    if lat is None or lng is None:
        return None
    return schemas.Position(lat=lat, lng=lng)


@router.get("/sites", response_model=List[str])
def read_sites(store: ReportStore = Depends(get_report_store)):
    return store.sites


# ==========================================
# 1. LISTA / MAPPA
# ==========================================
@router.get("/reports", response_model=List[schemas.Report])
def read_reports(q: str = "", site: str = config.ALL, status: schemas.StatusFilter = config.ALL, store: ReportStore = Depends(get_report_store)):
    return store.list(schemas.ReportFilter(text_query=q, site=site, status=status))


@router.get("/reports/markers", response_model=schemas.MapView)
def read_markers(site: str = config.ALL, status: schemas.StatusFilter = config.ALL, store: ReportStore = Depends(get_report_store)):
    return store.map_markers(store.list(schemas.ReportFilter(site=site, status=status)))


@router.get("/reports/{report_id}", response_model=schemas.Report)
def read_report(report_id: str, store: ReportStore = Depends(get_report_store)):
    return store.get(report_id)


# ==========================================
# 2. CREAZIONE / MODIFICA
# ==========================================
@router.post("/reports", response_model=schemas.Report, status_code=201)
def create_report(
    response: Response,
    site: str = Form(...),
    comment: str = Form(""),
    lat: Optional[float] = Form(None),
    lng: Optional[float] = Form(None),
    files: Optional[List[UploadFile]] = File(None),
    store: ReportStore = Depends(get_report_store),
):
    photos = read_uploads(files)
    report = store.create(site, comment, photos, _position(lat, lng))
    flag_persist_warning(response, store)
    return report


@router.put("/reports/{report_id}", response_model=schemas.Report)
def update_report(report_id: str, up: schemas.ReportUpdate, response: Response, store: ReportStore = Depends(get_report_store)):
    report = store.update(report_id, site=up.site, comment=up.comment)
    flag_persist_warning(response, store)
    return report


@router.delete("/reports/{report_id}")
def delete_report(report_id: str, response: Response, store: ReportStore = Depends(get_report_store)):
    store.remove(report_id)
    flag_persist_warning(response, store)
    return {"status": "deleted", "id": report_id}


# ==========================================
# 3. CHIUSURA
# ==========================================
@router.post("/reports/{report_id}/closing")
def start_closing(report_id: str, store: ReportStore = Depends(get_report_store)):
    store.start_closing(report_id)
    return {"closing_id": store.closing_id}


@router.delete("/reports/{report_id}/closing")
def cancel_closing(report_id: str, store: ReportStore = Depends(get_report_store)):
    store.cancel_closing(report_id)
    return {"closing_id": store.closing_id}


@router.post("/reports/{report_id}/complete", response_model=schemas.Report)
def complete_report(
    report_id: str,
    response: Response,
    closing_comment: str = Form(""),
    lat: Optional[float] = Form(None),
    lng: Optional[float] = Form(None),
    files: Optional[List[UploadFile]] = File(None),
    store: ReportStore = Depends(get_report_store),
):
    photos = read_uploads(files)
    report = store.complete(report_id, closing_comment, photos, _position(lat, lng))
    flag_persist_warning(response, store)
    return report


@router.post("/reports/{report_id}/amend", response_model=schemas.Report)
def amend_report(
    report_id: str,
    response: Response,
    closing_comment: str = Form(""),
    lat: Optional[float] = Form(None),
    lng: Optional[float] = Form(None),
    files: Optional[List[UploadFile]] = File(None),
    store: ReportStore = Depends(get_report_store),
):
    photos = read_uploads(files)
    report = store.amend_completed(report_id, closing_comment, photos, _position(lat, lng))
    flag_persist_warning(response, store)
    return report


@router.post("/reports/{report_id}/reopen", response_model=schemas.Report)
def reopen_report(report_id: str, response: Response, store: ReportStore = Depends(get_report_store)):
    report = store.reopen(report_id)
    flag_persist_warning(response, store)
    return report


# ==========================================
# 4. GPS
# ==========================================
@router.post("/position/sample", response_model=schemas.Position)
async def sample_position(req: schemas.SampleRequest):
    """Pick the best of the fixes the device collected; an empty list yields the default position."""
    source = StaticPositionSource(req.fixes) if req.fixes else None
    return await sample_best_position(
        source,
        n=req.count or config.GPS_SAMPLE_COUNT,
        timeout_ms=req.timeout_ms or config.GPS_TIMEOUT_MS,
    )


def _dispatch(source, message):
    kind = message.get("type")
    if kind == "fix":
        try:
            source.push(schemas.PositionFix.model_validate(message))
        except PydanticValidationError as e:
            logger.warning("Ignoring malformed fix: %s", e)
    elif kind == "error":
        source.fail()
    elif kind == "stop":
        source.close()


@router.websocket("/position/stream")
async def stream_position(
    websocket: WebSocket,
    count: int = config.GPS_SAMPLE_COUNT,
    timeout_ms: int = config.GPS_TIMEOUT_MS,
):
    """Live sampling: the device sends ``fix`` / ``error`` / ``stop`` messages
    after ``ready``, and gets ``progress`` updates and a final ``position``."""
    await websocket.accept()
    source = QueuePositionSource()
    progress = []
    sampler = asyncio.create_task(sample_best_position(
        source, n=count, timeout_ms=timeout_ms,
        on_progress=lambda best, seen: progress.append(seen),
    ))
    while source.subscriber_count == 0 and not sampler.done():
        await asyncio.sleep(0)
    await websocket.send_json({"type": "ready"})

    try:
        while not sampler.done():
            receiver = asyncio.create_task(websocket.receive_json())
            done, _ = await asyncio.wait({sampler, receiver}, return_when=asyncio.FIRST_COMPLETED)
            if receiver not in done:
                receiver.cancel()
                break
            _dispatch(source, receiver.result())
            await asyncio.sleep(0)
            while progress:
                await websocket.send_json({"type": "progress", "seen": progress.pop(0)})
    except WebSocketDisconnect:
        logger.info("Position stream closed by the device")
        sampler.cancel()
        return

    position = await sampler
    for seen in progress:
        await websocket.send_json({"type": "progress", "seen": seen})
    await websocket.send_json({"type": "position", **position.model_dump()})
    await websocket.close()
