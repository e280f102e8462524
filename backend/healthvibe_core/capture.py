from __future__ import annotations

import io
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable, Protocol

import numpy as np
from loguru import logger
from scipy.io import wavfile

from .errors import PermissionDenied
from .models import AudioClip, MediaAttachment, SymptomSubmission

RECORDED_AUDIO_MIME_TYPE = "audio/wav"


class MicrophoneStream(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...

    def close(self) -> None: ...


StreamFactory = Callable[[int, Callable[[bytes], None]], MicrophoneStream]


def open_sounddevice_stream(sample_rate: int, on_chunk: Callable[[bytes], None]) -> MicrophoneStream:
    # Imported lazily: PortAudio is only needed once a recording actually starts.
    import sounddevice as sd

    def _callback(indata, frames, time_info, status) -> None:
        if status:
            logger.warning("microphone stream status: {}", status)
        on_chunk(bytes(indata))

    return sd.RawInputStream(samplerate=sample_rate, channels=1, dtype="int16", callback=_callback)


def pcm16_to_wav(pcm: bytes, sample_rate: int) -> bytes:
    samples = np.frombuffer(pcm[: len(pcm) - (len(pcm) % 2)], dtype="<i2")
    buffer = io.BytesIO()
    wavfile.write(buffer, sample_rate, samples)
    return buffer.getvalue()


@dataclass(frozen=True)
class RejectedFile:
    file_name: str
    size_bytes: int
    reason: str


@dataclass
class AdmissionReport:
    accepted: list[MediaAttachment] = field(default_factory=list)
    rejected: list[RejectedFile] = field(default_factory=list)


class AttachmentStager:
    """Ordered set of uploaded images/videos waiting for the next submission.

    Files over the size ceiling never enter the set. They come back in the
    admission report instead so the caller can tell the patient about them.
    """

    def __init__(self, max_size_bytes: int) -> None:
        self.max_size_bytes = max_size_bytes
        self._attachments: list[MediaAttachment] = []

    @property
    def attachments(self) -> list[MediaAttachment]:
        return list(self._attachments)

    def add_files(self, candidates: Iterable[MediaAttachment]) -> AdmissionReport:
        report = AdmissionReport()
        limit_mb = self.max_size_bytes / (1024 * 1024)
        for candidate in candidates:
            if candidate.origin_size_bytes > self.max_size_bytes:
                logger.warning(
                    "attachment rejected: {} is {} bytes (limit {} bytes)",
                    candidate.file_name,
                    candidate.origin_size_bytes,
                    self.max_size_bytes,
                )
                report.rejected.append(
                    RejectedFile(
                        file_name=candidate.file_name,
                        size_bytes=candidate.origin_size_bytes,
                        reason=f"File exceeds {limit_mb:g}MB limit.",
                    )
                )
                continue
            report.accepted.append(candidate)
        self._attachments.extend(report.accepted)
        return report

    def remove_file(self, index: int) -> MediaAttachment | None:
        if index < 0 or index >= len(self._attachments):
            return None
        return self._attachments.pop(index)

    def clear(self) -> None:
        self._attachments.clear()


class VoiceRecorder:
    """Owns the microphone. At most one recording is active at a time.

    `_device_lock` serializes opening and releasing the stream; `_lock` only
    guards the chunk buffer, which the audio callback thread also touches.
    """

    def __init__(self, *, sample_rate: int = 16000, stream_factory: StreamFactory | None = None) -> None:
        self.sample_rate = sample_rate
        self.stream_factory = stream_factory or open_sounddevice_stream
        self._lock = threading.Lock()
        self._device_lock = threading.Lock()
        self._stream: MicrophoneStream | None = None
        self._chunks: list[bytes] = []
        self._clip: AudioClip | None = None

    @property
    def is_recording(self) -> bool:
        return self._stream is not None

    @property
    def clip(self) -> AudioClip | None:
        return self._clip

    def _on_chunk(self, chunk: bytes) -> None:
        if not chunk:
            return
        with self._lock:
            self._chunks.append(chunk)

    def start_recording(self) -> bool:
        with self._device_lock:
            if self._stream is not None:
                return False
            with self._lock:
                self._chunks = []
            self._clip = None

            stream: MicrophoneStream | None = None
            try:
                stream = self.stream_factory(self.sample_rate, self._on_chunk)
                stream.start()
            except Exception as exc:
                logger.warning("microphone access failed: {}", exc)
                if stream is not None:
                    stream.close()
                raise PermissionDenied("Microphone access required.") from exc
            self._stream = stream
            return True

    def _release(self) -> None:
        # Caller holds _device_lock.
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()

    def stop_recording(self) -> AudioClip | None:
        with self._device_lock:
            if self._stream is None:
                return None
            try:
                self._release()
            finally:
                with self._lock:
                    pcm = b"".join(self._chunks)
                    self._chunks = []
                self._clip = AudioClip(
                    raw_bytes=pcm16_to_wav(pcm, self.sample_rate),
                    mime_type=RECORDED_AUDIO_MIME_TYPE,
                )
            return self._clip

    def discard_recording(self) -> None:
        with self._lock:
            self._chunks = []
        self._clip = None

    def use_clip(self, clip: AudioClip) -> None:
        self.close()
        self._clip = clip

    def close(self) -> None:
        with self._device_lock:
            try:
                self._release()
            finally:
                with self._lock:
                    self._chunks = []


class MediaCapture:
    def __init__(
        self,
        *,
        max_size_bytes: int,
        sample_rate: int = 16000,
        stream_factory: StreamFactory | None = None,
    ) -> None:
        self.stager = AttachmentStager(max_size_bytes)
        self.recorder = VoiceRecorder(sample_rate=sample_rate, stream_factory=stream_factory)

    def __enter__(self) -> "MediaCapture":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def attachments(self) -> list[MediaAttachment]:
        return self.stager.attachments

    @property
    def voice_clip(self) -> AudioClip | None:
        return self.recorder.clip

    @property
    def is_recording(self) -> bool:
        return self.recorder.is_recording

    def start_recording(self) -> bool:
        return self.recorder.start_recording()

    def stop_recording(self) -> AudioClip | None:
        return self.recorder.stop_recording()

    def discard_recording(self) -> None:
        self.recorder.discard_recording()

    def add_files(self, candidates: Iterable[MediaAttachment]) -> AdmissionReport:
        return self.stager.add_files(candidates)

    def remove_file(self, index: int) -> MediaAttachment | None:
        return self.stager.remove_file(index)

    def submission(self, free_text: str) -> SymptomSubmission:
        return SymptomSubmission(
            free_text=free_text or "",
            attachments=self.stager.attachments,
            voice_clip=self.recorder.clip,
        )

    def clear(self) -> None:
        self.stager.clear()
        self.recorder.close()
        self.recorder.discard_recording()

    def close(self) -> None:
        self.recorder.close()
