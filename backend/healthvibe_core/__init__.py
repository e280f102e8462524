from .analysis import AnalysisClient, parse_analysis_result
from .capture import AdmissionReport, AttachmentStager, MediaCapture, RejectedFile, VoiceRecorder
from .chat import ChatSession, ChatSessionManager
from .config import Settings, normalize_language
from .controller import AnalysisInProgress, AnalysisState, Err, Ok, TriageController
from .encoding import encode_part, encode_parts
from .errors import (
    AnalysisFailed,
    ChatTurnFailed,
    EmptyResponse,
    EmptySubmission,
    EncodingError,
    HealthVibeError,
    ParseError,
    PermissionDenied,
    ProviderError,
    ProviderNotConfigured,
    ProviderTimeout,
    SynthesisUnavailable,
)
from .gemini import GeminiClient
from .models import (
    AnalysisResult,
    AudioClip,
    ChatMessage,
    ClinicalSummary,
    Diagnosis,
    EncodedPart,
    MediaAttachment,
    SymptomSubmission,
    UrgencyLevel,
)
from .request_builder import ANALYSIS_SCHEMA, AnalysisRequest, build_analysis_request
from .speech import SpeechClient, Waveform, WelcomeVoice, decode_pcm

__all__ = [
    "ANALYSIS_SCHEMA",
    "AdmissionReport",
    "AnalysisClient",
    "AnalysisFailed",
    "AnalysisInProgress",
    "AnalysisRequest",
    "AnalysisResult",
    "AnalysisState",
    "AttachmentStager",
    "AudioClip",
    "ChatMessage",
    "ChatSession",
    "ChatSessionManager",
    "ChatTurnFailed",
    "ClinicalSummary",
    "Diagnosis",
    "EmptyResponse",
    "EmptySubmission",
    "EncodedPart",
    "EncodingError",
    "Err",
    "GeminiClient",
    "HealthVibeError",
    "MediaAttachment",
    "MediaCapture",
    "Ok",
    "ParseError",
    "PermissionDenied",
    "ProviderError",
    "ProviderNotConfigured",
    "ProviderTimeout",
    "RejectedFile",
    "Settings",
    "SpeechClient",
    "SymptomSubmission",
    "SynthesisUnavailable",
    "TriageController",
    "UrgencyLevel",
    "VoiceRecorder",
    "Waveform",
    "WelcomeVoice",
    "build_analysis_request",
    "decode_pcm",
    "encode_part",
    "encode_parts",
    "normalize_language",
    "parse_analysis_result",
]
