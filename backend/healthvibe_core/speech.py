from __future__ import annotations

import base64
import binascii
import io
import threading
from dataclasses import dataclass
from typing import Callable, Protocol

import numpy as np
from loguru import logger
from scipy.io import wavfile

from .config import normalize_language
from .errors import ProviderError, SynthesisUnavailable
from .gemini import GeminiClient, candidate_inline_data

PCM_SAMPLE_RATE = 24000
PCM_CHANNELS = 1

WELCOME_UTTERANCES = {
    "es": (
        "Hola, soy el Doctor Health Vibe. Por favor, sube una foto de tu síntoma "
        "o descríbelo con una nota de voz para comenzar."
    ),
    "en": (
        "Hello, I am Doctor Health Vibe. Please upload a photo of your symptom "
        "or describe it with a voice note to begin."
    ),
}


@dataclass(frozen=True, eq=False)
class Waveform:
    samples: np.ndarray
    sample_rate: int = PCM_SAMPLE_RATE
    channels: int = PCM_CHANNELS

    @property
    def duration_seconds(self) -> float:
        return len(self.samples) / float(self.sample_rate)

    def to_wav_bytes(self) -> bytes:
        buffer = io.BytesIO()
        wavfile.write(buffer, self.sample_rate, self.samples)
        return buffer.getvalue()


def decode_pcm(audio_base64: str) -> Waveform:
    """Decode base64 16-bit little-endian mono PCM into float samples in [-1.0, 1.0]."""
    try:
        raw = base64.b64decode(audio_base64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SynthesisUnavailable("Speech payload is not valid base64.") from exc
    if not raw:
        raise SynthesisUnavailable("Speech payload is empty.")
    if len(raw) % 2:
        raise SynthesisUnavailable("Speech payload is not 16-bit PCM.")
    samples = np.frombuffer(raw, dtype="<i2").astype(np.float32) / 32768.0
    return Waveform(samples=samples)


class SpeechClient:
    def __init__(self, gemini: GeminiClient, *, model: str, voice: str, timeout_seconds: float) -> None:
        self.gemini = gemini
        self.model = model
        self.voice = voice
        self.timeout_seconds = timeout_seconds

    async def synthesize_welcome(self, language: str) -> str:
        text = WELCOME_UTTERANCES[normalize_language(language)]
        payload = {
            "contents": [{"parts": [{"text": text}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": self.voice}},
                },
            },
        }
        try:
            response_json = await self.gemini.generate_content(
                model=self.model,
                payload=payload,
                timeout_seconds=self.timeout_seconds,
            )
        except ProviderError as exc:
            raise SynthesisUnavailable(str(exc)) from exc
        audio = candidate_inline_data(response_json)
        if not audio:
            raise SynthesisUnavailable("Speech service returned no audio.")
        return audio


class AudioPlayer(Protocol):
    def play(self, waveform: Waveform, on_finished: Callable[[], None]) -> None: ...


class SoundDevicePlayer:
    def play(self, waveform: Waveform, on_finished: Callable[[], None]) -> None:
        import sounddevice as sd

        sd.play(waveform.samples, samplerate=waveform.sample_rate)

        def _wait() -> None:
            try:
                sd.wait()
            finally:
                on_finished()

        threading.Thread(target=_wait, name="welcome-playback", daemon=True).start()


class WelcomeVoice:
    """One welcome playback at a time; clicks while busy are ignored."""

    def __init__(self, speech: SpeechClient, player: AudioPlayer | None = None) -> None:
        self.speech = speech
        self.player = player or SoundDevicePlayer()
        self._gate = threading.Lock()
        self._busy = False
        self.has_played = False

    @property
    def is_busy(self) -> bool:
        return self._busy

    def _claim(self) -> bool:
        with self._gate:
            if self._busy:
                return False
            self._busy = True
            return True

    def _release(self) -> None:
        with self._gate:
            self._busy = False

    async def play_welcome(self, language: str) -> str:
        if not self._claim():
            return "ignored"
        try:
            audio = await self.speech.synthesize_welcome(language)
            waveform = decode_pcm(audio)
        except SynthesisUnavailable as exc:
            logger.warning("welcome speech unavailable: {}", exc)
            self._release()
            return "unavailable"
        except BaseException:
            self._release()
            raise

        try:
            self.player.play(waveform, self._release)
        except Exception:
            logger.exception("welcome playback failed")
            self._release()
            return "unavailable"
        self.has_played = True
        return "playing"
