from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

from loguru import logger

from .analysis import AnalysisClient
from .chat import ChatSession, ChatSessionManager
from .config import normalize_language
from .errors import AnalysisFailed, EmptySubmission, EncodingError, HealthVibeError
from .models import AnalysisResult, ChatMessage, SymptomSubmission
from .request_builder import build_analysis_request

T = TypeVar("T")
E = TypeVar("E", bound=Exception)

ERROR_TITLES = {
    "es": "No pudimos completar el análisis. Inténtalo de nuevo.",
    "en": "We could not complete the analysis. Please try again.",
}


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E


AnalysisOutcome = Union[Ok[AnalysisResult], Err[HealthVibeError]]


class AnalysisState(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    COMPLETE = "complete"
    ERROR = "error"


class AnalysisInProgress(HealthVibeError):
    pass


class TriageController:
    """State machine behind the result view: idle -> analyzing -> complete | error.

    The controller owns the chat session for the current result and replaces
    it whenever the result or the language changes.
    """

    def __init__(self, analysis: AnalysisClient, chats: ChatSessionManager, *, language: str = "es") -> None:
        self.analysis = analysis
        self.chats = chats
        self._language = normalize_language(language)
        self.status = AnalysisState.IDLE
        self.result: AnalysisResult | None = None
        self.error: str | None = None

    @property
    def language(self) -> str:
        return self._language

    def set_language(self, language: str) -> None:
        language = normalize_language(language)
        if language == self._language:
            return
        self._language = language
        self.chats.discard()

    async def _run(self, submission: SymptomSubmission, language: str) -> AnalysisOutcome:
        try:
            request = await build_analysis_request(
                submission.free_text,
                submission.attachments,
                submission.voice_clip,
                language,
            )
            return Ok(await self.analysis.analyze(request))
        except (EncodingError, AnalysisFailed) as exc:
            return Err(exc)

    async def submit(self, submission: SymptomSubmission) -> AnalysisOutcome:
        if self.status == AnalysisState.ANALYZING:
            raise AnalysisInProgress("An analysis is already running.")
        if not submission.has_content:
            raise EmptySubmission("Describe a symptom, attach a file or record a voice note.")

        language = self._language
        self.status = AnalysisState.ANALYZING
        self.result = None
        self.error = None
        self.chats.discard()

        try:
            outcome = await self._run(submission, language)
        except BaseException:
            logger.exception("analysis aborted unexpectedly")
            self.error = ERROR_TITLES[language]
            self.status = AnalysisState.ERROR
            raise
        if isinstance(outcome, Ok):
            self.result = outcome.value
            self.status = AnalysisState.COMPLETE
        else:
            logger.warning("analysis outcome is an error: {}", outcome.error)
            self.error = ERROR_TITLES[language]
            self.status = AnalysisState.ERROR
        return outcome

    def reset(self) -> None:
        self.status = AnalysisState.IDLE
        self.result = None
        self.error = None
        self.chats.discard()

    def chat_session(self) -> ChatSession | None:
        if self.status != AnalysisState.COMPLETE or self.result is None:
            return None
        return self.chats.session_for(self.result, self._language)

    async def send_chat(self, text: str) -> tuple[ChatMessage, ChatMessage] | None:
        session = self.chat_session()
        if session is None:
            return None
        return await self.chats.converse(session, text)
