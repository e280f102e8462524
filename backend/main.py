from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel

from healthvibe_core import (
    AdmissionReport,
    AnalysisClient,
    AnalysisInProgress,
    AudioClip,
    ChatSessionManager,
    EmptySubmission,
    EncodingError,
    Err,
    GeminiClient,
    MediaAttachment,
    MediaCapture,
    PermissionDenied,
    ProviderNotConfigured,
    RejectedFile,
    Settings,
    SpeechClient,
    TriageController,
    WelcomeVoice,
    normalize_language,
)
from healthvibe_core.models import DEFAULT_AUDIO_MIME_TYPE

_ALLOWED_AUDIO_MIME_TYPES = {
    "audio/mpeg",
    "audio/mp3",
    "audio/mp4",
    "audio/m4a",
    "audio/wav",
    "audio/x-wav",
    "audio/webm",
    "audio/ogg",
}
_ALLOWED_AUDIO_EXTENSIONS = {".mp3", ".mp4", ".m4a", ".wav", ".webm", ".ogg", ".flac"}


class AnalysisPayload(BaseModel):
    description: str = ""


class ChatPayload(BaseModel):
    message: str


class LanguagePayload(BaseModel):
    language: str


class SpeechPayload(BaseModel):
    language: str | None = None


class HealthVibeApp:
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or Settings.from_env()
        self.gemini = GeminiClient(api_key=self.settings.api_key, base_url=self.settings.base_url)
        self.capture = MediaCapture(
            max_size_bytes=self.settings.max_file_size_bytes,
            sample_rate=self.settings.recording_sample_rate,
        )
        self.analysis = AnalysisClient(
            self.gemini,
            model=self.settings.analysis_model,
            timeout_seconds=self.settings.analysis_timeout_seconds,
        )
        self.chats = ChatSessionManager(
            self.gemini,
            model=self.settings.chat_model,
            timeout_seconds=self.settings.chat_timeout_seconds,
        )
        self.controller = TriageController(self.analysis, self.chats, language=self.settings.default_language)
        self.speech = SpeechClient(
            self.gemini,
            model=self.settings.tts_model,
            voice=self.settings.tts_voice,
            timeout_seconds=self.settings.tts_timeout_seconds,
        )
        self.welcome = WelcomeVoice(self.speech)

    def close(self) -> None:
        self.capture.close()


container = HealthVibeApp()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    try:
        yield
    finally:
        container.close()


app = FastAPI(title="HealthVibe Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(container.settings.allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _normalize_upload_filename(upload: UploadFile | None, fallback_name: str) -> str:
    file_name = (upload.filename or "").strip() if upload else ""
    return file_name or fallback_name


def _extension_from_filename(file_name: str) -> str:
    return Path(file_name).suffix.lower().strip()


async def _read_upload_bytes(upload: UploadFile, *, max_bytes: int, too_large_detail: str) -> bytes:
    raw = await upload.read(max_bytes + 1)
    if len(raw) > max_bytes:
        raise HTTPException(status_code=413, detail=too_large_detail)
    if not raw:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")
    return raw


def _validate_audio_upload(file_name: str, mime_type: str) -> None:
    ext = _extension_from_filename(file_name)
    if mime_type not in _ALLOWED_AUDIO_MIME_TYPES and ext not in _ALLOWED_AUDIO_EXTENSIONS:
        raise HTTPException(status_code=415, detail="Unsupported audio format.")


def _is_visual_media(mime_type: str) -> bool:
    return mime_type.startswith("image/") or mime_type.startswith("video/")


async def _staged_candidate(upload: UploadFile, index: int, max_bytes: int) -> MediaAttachment | RejectedFile:
    file_name = _normalize_upload_filename(upload, f"attachment-{index + 1}")
    mime_type = (upload.content_type or "").lower().strip()
    if not _is_visual_media(mime_type):
        return RejectedFile(file_name=file_name, size_bytes=upload.size or 0, reason="Unsupported file type.")
    # Read one byte past the ceiling so oversized files are detected without buffering them whole.
    raw = await upload.read(max_bytes + 1)
    size = upload.size if upload.size is not None else len(raw)
    return MediaAttachment(raw_bytes=raw, mime_type=mime_type, file_name=file_name, origin_size_bytes=size)


def _attachment_view(attachment: MediaAttachment) -> dict[str, Any]:
    return {
        "file_name": attachment.file_name,
        "mime_type": attachment.mime_type,
        "size_bytes": attachment.origin_size_bytes,
    }


def _rejection_view(rejected: RejectedFile) -> dict[str, Any]:
    return {"file_name": rejected.file_name, "size_bytes": rejected.size_bytes, "reason": rejected.reason}


def _intake_view() -> dict[str, Any]:
    capture = container.capture
    clip = capture.voice_clip
    return {
        "files": [_attachment_view(item) for item in capture.attachments],
        "voice_clip": {"mime_type": clip.mime_type, "size_bytes": len(clip.raw_bytes)} if clip else None,
        "recording": capture.is_recording,
        "max_file_size_mb": container.settings.max_file_size_mb,
    }


def _analysis_view() -> dict[str, Any]:
    controller = container.controller
    result = controller.result
    return {
        "status": controller.status.value,
        "language": controller.language,
        "result": result.model_dump(by_alias=True) if result else None,
        "urgency_level": result.urgency_level.value if result else None,
        "error": controller.error,
    }


def _transcript_view() -> dict[str, Any]:
    session = container.controller.chat_session()
    if session is None:
        raise HTTPException(status_code=404, detail="No analysis result to chat about.")
    return {
        "session_id": session.session_id,
        "language": session.language,
        "messages": [message.model_dump(mode="json") for message in session.transcript],
    }


@app.get("/health")
def health():
    return {"ok": True, "configured": bool(container.settings.api_key)}


@app.get("/intake")
def get_intake():
    return _intake_view()


@app.post("/intake/files")
async def add_intake_files(files: list[UploadFile] = File(...)):
    max_bytes = container.settings.max_file_size_bytes
    candidates: list[MediaAttachment] = []
    report = AdmissionReport()
    for index, upload in enumerate(files):
        staged = await _staged_candidate(upload, index, max_bytes)
        if isinstance(staged, RejectedFile):
            logger.warning("attachment rejected: {} ({})", staged.file_name, staged.reason)
            report.rejected.append(staged)
        else:
            candidates.append(staged)
    admitted = container.capture.add_files(candidates)
    report.accepted.extend(admitted.accepted)
    report.rejected.extend(admitted.rejected)
    return {
        **_intake_view(),
        "accepted": [_attachment_view(item) for item in report.accepted],
        "rejected": [_rejection_view(item) for item in report.rejected],
    }


@app.delete("/intake/files/{index}")
def remove_intake_file(index: int):
    removed = container.capture.remove_file(index)
    return {**_intake_view(), "removed": _attachment_view(removed) if removed else None}


@app.post("/intake/recording/start")
def start_recording():
    try:
        started = container.capture.start_recording()
    except PermissionDenied as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    return {**_intake_view(), "started": started}


@app.post("/intake/recording/stop")
def stop_recording():
    clip = container.capture.stop_recording()
    return {**_intake_view(), "stopped": clip is not None}


@app.delete("/intake/recording")
def discard_recording():
    container.capture.discard_recording()
    return _intake_view()


@app.post("/intake/voice")
async def upload_voice(audio: UploadFile = File(...)):
    file_name = _normalize_upload_filename(audio, "voice-note")
    mime_type = (audio.content_type or "").lower().strip()
    _validate_audio_upload(file_name, mime_type)
    settings = container.settings
    raw = await _read_upload_bytes(
        audio,
        max_bytes=settings.max_file_size_bytes,
        too_large_detail=f"Audio file exceeds {settings.max_file_size_mb:g}MB limit.",
    )
    container.capture.recorder.use_clip(AudioClip(raw_bytes=raw, mime_type=mime_type or DEFAULT_AUDIO_MIME_TYPE))
    return _intake_view()


@app.put("/language")
def set_language(payload: LanguagePayload):
    try:
        container.controller.set_language(payload.language)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"language": container.controller.language}


@app.get("/analysis")
def get_analysis():
    return _analysis_view()


@app.post("/analysis")
async def submit_analysis(payload: AnalysisPayload):
    submission = container.capture.submission(payload.description)
    try:
        outcome = await container.controller.submit(submission)
    except EmptySubmission as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except AnalysisInProgress as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc

    if isinstance(outcome, Err):
        status_code = 502
        if isinstance(outcome.error, EncodingError):
            status_code = 422
        elif isinstance(outcome.error.__cause__, ProviderNotConfigured):
            status_code = 503
        return JSONResponse(status_code=status_code, content=_analysis_view())

    container.capture.clear()
    return _analysis_view()


@app.post("/analysis/reset")
def reset_analysis():
    container.controller.reset()
    return _analysis_view()


@app.get("/chat/messages")
def get_chat_messages():
    return _transcript_view()


@app.post("/chat/messages")
async def post_chat_message(payload: ChatPayload):
    text = (payload.message or "").strip()
    if not text:
        raise HTTPException(status_code=400, detail="Empty message")
    exchanged = await container.controller.send_chat(text)
    if exchanged is None:
        raise HTTPException(status_code=404, detail="No analysis result to chat about.")
    return _transcript_view()


@app.post("/speech/welcome")
async def play_welcome(payload: SpeechPayload | None = None):
    try:
        language = normalize_language((payload.language if payload else None) or container.controller.language)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    status = await container.welcome.play_welcome(language)
    return {"status": status}
