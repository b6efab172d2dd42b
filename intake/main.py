"""FastAPI backend for voice-assisted item intake"""
import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from . import config
from .ai_client import reset_clients
from .database import (
    get_item,
    init_database,
    list_categories,
    list_tags,
    list_vendors,
)
from .errors import AIServiceError, AINotConfiguredError, ErrorCategory, NOT_CONFIGURED_MESSAGE
from .extraction import extract
from .handoff import HandoffError, apply_extraction
from .images import ImageUpload, PreviewStore
from .models import AIContext, ExtractionRequest, ManualInputs, RecordingStart, TranscriptionResponse
from .pipeline import ExtractionSession
from .recording import AudioClip, RecordingError, is_supported_audio_type
from .session import InvalidTransition
from .transcription import transcribe


logger = logging.getLogger(__name__)

db_conn = None
previews: Optional[PreviewStore] = None
sessions: Dict[str, ExtractionSession] = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the catalog and preview store on startup"""
    global db_conn, previews
    config.configure_logging()
    db_conn = init_database()
    previews = PreviewStore(config.PREVIEW_DIR)
    logger.info("Database initialized at %s", config.DB_PATH)
    if not config.is_ai_configured():
        logger.warning("GEMINI_API_KEY not set, AI endpoints will answer 503")

    yield

    for session in list(sessions.values()):
        session.close()
    sessions.clear()
    reset_clients()
    if db_conn:
        db_conn.close()
        db_conn = None


app = FastAPI(title="Inventory Voice Intake", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": "Validation failed", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(RecordingError)
async def recording_error_handler(request: Request, exc: RecordingError):
    return JSONResponse(status_code=400, content={"detail": exc.message, "kind": exc.kind.value})


@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request: Request, exc: InvalidTransition):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


def _require_ai() -> None:
    if not config.is_ai_configured():
        raise HTTPException(status_code=503, detail=NOT_CONFIGURED_MESSAGE)


def _ai_error_response(e: AIServiceError, prefix: str) -> HTTPException:
    if isinstance(e, AINotConfiguredError):
        return HTTPException(status_code=503, detail=e.message)
    if e.category is ErrorCategory.INPUT:
        return HTTPException(status_code=400, detail=e.message)
    return HTTPException(status_code=500, detail=f"{prefix}: {e.message}")


async def _read_audio(audio: Optional[UploadFile]) -> AudioClip:
    if audio is None:
        raise HTTPException(status_code=400, detail="Audio file is required")
    if not is_supported_audio_type(audio.content_type):
        raise HTTPException(
            status_code=400,
            detail="Invalid audio file type. Supported: webm, mp4, mp3, wav, ogg, flac, m4a",
        )
    data = await audio.read()
    if not data:
        raise HTTPException(status_code=400, detail="Audio file is empty")
    return AudioClip(data=data, mime_type=audio.content_type)


@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "ok",
        "ai_configured": config.is_ai_configured(),
        "active_sessions": len(sessions),
    }


@app.post("/api/ai/transcribe", response_model=TranscriptionResponse)
async def transcribe_endpoint(audio: Optional[UploadFile] = File(None)):
    """Transcribe an uploaded voice recording"""
    _require_ai()
    clip = await _read_audio(audio)

    try:
        text = await transcribe(clip.data, clip.mime_type)
    except AIServiceError as e:
        raise _ai_error_response(e, "Transcription failed")

    return TranscriptionResponse(text=text)


@app.post("/api/ai/extract")
async def extract_endpoint(request: ExtractionRequest):
    """Extract item fields from a transcript and optional base64 photos"""
    _require_ai()

    try:
        data = await extract(request.text, request.images, request.context())
    except AIServiceError as e:
        raise _ai_error_response(e, "Extraction failed")

    return data.model_dump(exclude_none=True)


@app.get("/api/categories")
async def list_categories_endpoint():
    return list_categories(db_conn)


@app.get("/api/vendors")
async def list_vendors_endpoint():
    return list_vendors(db_conn)


@app.get("/api/items/{item_id}")
async def get_item_endpoint(item_id: str):
    item = get_item(db_conn, item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")
    return item


# Voice intake sessions. Held in memory only; a restart drops them.

async def _session_transcribe(audio: bytes, mime_type: str) -> str:
    return await transcribe(audio, mime_type)


async def _session_extract(text: str, images: List[str], context: AIContext):
    return await extract(text, images, context)


def evict_idle_sessions() -> int:
    """Close sessions the client walked away from; returns how many were closed"""
    idle = [
        session_id for session_id, session in sessions.items()
        if session.idle_for() > config.SESSION_IDLE_SECONDS
    ]
    for session_id in idle:
        logger.info("Closing idle session %s", session_id)
        sessions.pop(session_id).close()
    return len(idle)


def _get_session(session_id: str) -> ExtractionSession:
    evict_idle_sessions()
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    session.touch()
    return session


def _complete_session(data, images):
    return apply_extraction(db_conn, data, images, previews)


@app.post("/api/ai/sessions", status_code=201)
async def create_session_endpoint():
    """Start a voice intake session with the current catalog as context"""
    evict_idle_sessions()
    context = AIContext(
        categories=list_categories(db_conn),
        vendors=list_vendors(db_conn),
        existing_tags=list_tags(db_conn) or None,
    )
    session = ExtractionSession(
        previews,
        context=context,
        transcriber=_session_transcribe,
        extractor=_session_extract,
        on_complete=_complete_session,
    )
    sessions[session.id] = session
    return session.snapshot()


@app.get("/api/ai/sessions/{session_id}")
async def get_session_endpoint(session_id: str):
    return _get_session(session_id).snapshot()


@app.delete("/api/ai/sessions/{session_id}", status_code=204)
async def close_session_endpoint(session_id: str):
    """Abandon a session and release its staged images"""
    session = _get_session(session_id)
    session.close()
    sessions.pop(session_id, None)


@app.post("/api/ai/sessions/{session_id}/images")
async def add_images_endpoint(session_id: str, files: List[UploadFile] = File(...)):
    session = _get_session(session_id)
    uploads = [ImageUpload(filename=f.filename or "image", data=await f.read()) for f in files]
    errors = session.add_images(uploads)
    return {"errors": errors, "session": session.snapshot()}


@app.delete("/api/ai/sessions/{session_id}/images/{image_id}")
async def remove_image_endpoint(session_id: str, image_id: str):
    session = _get_session(session_id)
    try:
        session.remove_image(image_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Image not found")
    return session.snapshot()


@app.post("/api/ai/sessions/{session_id}/images/{image_id}/primary")
async def set_primary_image_endpoint(session_id: str, image_id: str):
    session = _get_session(session_id)
    try:
        session.set_primary(image_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Image not found")
    return session.snapshot()


@app.get("/api/ai/sessions/{session_id}/images/{image_id}/preview")
async def image_preview_endpoint(session_id: str, image_id: str):
    session = _get_session(session_id)
    image = next((img for img in session.state.images if img.id == image_id), None)
    if image is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return FileResponse(previews.path(image.preview_ref), media_type="image/jpeg")


@app.post("/api/ai/sessions/{session_id}/recording")
async def submit_recording_endpoint(session_id: str, audio: Optional[UploadFile] = File(None)):
    """Process a (first or supplemental) voice recording"""
    session = _get_session(session_id)
    _require_ai()
    clip = await _read_audio(audio)
    await session.submit_recording(clip)
    return session.snapshot()


@app.post("/api/ai/sessions/{session_id}/recording/start")
async def start_recording_endpoint(session_id: str, body: Optional[RecordingStart] = None):
    """Open a streamed recording; the client then uploads chunks in order"""
    session = _get_session(session_id)
    mime_type = session.start_recording(body.supported_types if body else None)
    return {"mime_type": mime_type, "session": session.snapshot()}


@app.post("/api/ai/sessions/{session_id}/recording/chunks")
async def add_recording_chunk_endpoint(session_id: str, chunk: UploadFile = File(...)):
    session = _get_session(session_id)
    session.add_audio_chunk(await chunk.read())
    return session.snapshot()


@app.post("/api/ai/sessions/{session_id}/recording/stop")
async def stop_recording_endpoint(session_id: str):
    """Finish the streamed recording and process it"""
    session = _get_session(session_id)
    _require_ai()
    await session.finish_recording()
    return session.snapshot()


@app.delete("/api/ai/sessions/{session_id}/recording")
async def cancel_recording_endpoint(session_id: str):
    session = _get_session(session_id)
    session.cancel_recording()
    return session.snapshot()


@app.post("/api/ai/sessions/{session_id}/manual")
async def apply_manual_endpoint(session_id: str, inputs: ManualInputs):
    session = _get_session(session_id)
    session.apply_manual(inputs.model_dump(exclude_none=True))
    return session.snapshot()


SESSION_ACTIONS = {
    "skip": ExtractionSession.skip_images,
    "continue": ExtractionSession.continue_to_voice,
    "back": ExtractionSession.back_to_images,
    "record-more": ExtractionSession.record_more,
    "apply-anyway": ExtractionSession.apply_anyway,
    "retry": ExtractionSession.retry,
    "start-over": ExtractionSession.start_over,
}


@app.post("/api/ai/sessions/{session_id}/actions/{action}")
async def session_action_endpoint(session_id: str, action: str):
    session = _get_session(session_id)
    handler = SESSION_ACTIONS.get(action)
    if handler is None:
        raise HTTPException(status_code=404, detail=f"Unknown action: {action}")
    handler(session)
    return session.snapshot()


@app.post("/api/ai/sessions/{session_id}/apply")
async def apply_session_endpoint(session_id: str):
    """Create the item from a completed session"""
    session = _get_session(session_id)
    try:
        handoff = session.apply()
    except HandoffError as e:
        raise HTTPException(status_code=400, detail=str(e))

    sessions.pop(session_id, None)
    item_id = handoff.result
    return {"item_id": item_id, "item": get_item(db_conn, item_id)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
