from __future__ import annotations

import asyncio
import itertools
import time
import uuid
from datetime import datetime, timezone
from typing import Any

from loguru import logger

from .config import normalize_language
from .errors import ChatTurnFailed, ProviderError
from .gemini import GeminiClient, candidate_text
from .models import AnalysisResult, ChatMessage

GREETINGS = {
    "es": "Hola. He revisado tu caso. ¿Tienes alguna pregunta sobre el diagnóstico o los pasos a seguir?",
    "en": "Hi. I have reviewed your case. Do you have any questions about the diagnosis or the next steps?",
}
EMPTY_REPLY_FALLBACK = {
    "es": "Lo siento, no pude procesar eso.",
    "en": "Sorry, I couldn't process that.",
}
TURN_FAILED_FALLBACK = {
    "es": "Hubo un error de conexión. Por favor intenta de nuevo.",
    "en": "There was a connection error. Please try again.",
}
_LANGUAGE_NAMES = {"es": "Spanish", "en": "English"}

_message_counter = itertools.count()


def _message_id() -> str:
    return f"{time.time_ns() // 1_000_000}-{next(_message_counter)}"


def build_chat_instruction(analysis: AnalysisResult, language: str) -> str:
    return "\n".join(
        [
            "Act as an Empathetic Medical Assistant.",
            f"CONTEXT: {analysis.context_json()}",
            f"LANGUAGE: Respond strictly in {_LANGUAGE_NAMES[language]}.",
            "GOAL: Answer follow-up questions, clarify the referral letter, give palliative advice.",
            "SAFETY: Never change the diagnosis or prescribe RX medications.",
        ]
    )


class ChatSession:
    """Conversation state for one analysis result in one language.

    `history` mirrors what the model has seen; `transcript` is what the patient
    sees, greeting and fallbacks included.
    """

    def __init__(self, analysis: AnalysisResult, language: str) -> None:
        self.session_id = f"chat_{uuid.uuid4().hex}"
        self.analysis = analysis
        self.language = normalize_language(language)
        self.system_instruction = build_chat_instruction(analysis, self.language)
        self.history: list[dict[str, Any]] = []
        self.transcript: list[ChatMessage] = []
        self._lock = asyncio.Lock()
        self._append("model", GREETINGS[self.language], message_id="init")

    def matches(self, analysis: AnalysisResult, language: str) -> bool:
        return self.analysis is analysis and self.language == language

    def _append(self, role: str, text: str, *, message_id: str | None = None) -> ChatMessage:
        message = ChatMessage(
            id=message_id or _message_id(),
            role=role,
            text=text,
            timestamp=datetime.now(timezone.utc),
        )
        self.transcript.append(message)
        return message


class ChatSessionManager:
    def __init__(self, gemini: GeminiClient, *, model: str, timeout_seconds: float) -> None:
        self.gemini = gemini
        self.model = model
        self.timeout_seconds = timeout_seconds
        self._current: ChatSession | None = None

    @property
    def current(self) -> ChatSession | None:
        return self._current

    def create_session(self, analysis: AnalysisResult, language: str) -> ChatSession:
        self._current = ChatSession(analysis, language)
        return self._current

    def session_for(self, analysis: AnalysisResult, language: str) -> ChatSession:
        if self._current is not None and self._current.matches(analysis, language):
            return self._current
        return self.create_session(analysis, language)

    def discard(self) -> None:
        self._current = None

    async def _send_locked(self, session: ChatSession, text: str) -> str:
        user_turn = {"role": "user", "parts": [{"text": text}]}
        payload = {
            "systemInstruction": {"parts": [{"text": session.system_instruction}]},
            "contents": [*session.history, user_turn],
        }
        try:
            response_json = await self.gemini.generate_content(
                model=self.model,
                payload=payload,
                timeout_seconds=self.timeout_seconds,
            )
        except ProviderError as exc:
            raise ChatTurnFailed(str(exc)) from exc

        reply = candidate_text(response_json).strip()
        if reply:
            session.history.extend([user_turn, {"role": "model", "parts": [{"text": reply}]}])
        return reply

    async def send_message(self, session: ChatSession, text: str) -> str:
        async with session._lock:
            return await self._send_locked(session, text)

    async def converse(self, session: ChatSession, text: str) -> tuple[ChatMessage, ChatMessage]:
        """Send one turn and record it in the transcript.

        The user message and its reply (or fallback) are appended under the
        session lock, so they stay adjacent even with overlapping callers.
        """
        async with session._lock:
            user_message = session._append("user", text)
            try:
                reply = await self._send_locked(session, text)
            except ChatTurnFailed as exc:
                logger.warning("chat turn failed ({}): {}", self.model, exc)
                reply_message = session._append("model", TURN_FAILED_FALLBACK[session.language])
                return user_message, reply_message
            if not reply:
                logger.warning("chat turn returned empty text ({})", self.model)
                reply = EMPTY_REPLY_FALLBACK[session.language]
            reply_message = session._append("model", reply)
            return user_message, reply_message
