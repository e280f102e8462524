from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_AUDIO_MIME_TYPE = "audio/webm"

UrgencyLiteral = Literal["High", "Medium", "Low", "Alta", "Media", "Baja"]
ChatRole = Literal["user", "model"]


class UrgencyLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


URGENCY_LABELS: dict[str, dict[UrgencyLevel, str]] = {
    "en": {UrgencyLevel.HIGH: "High", UrgencyLevel.MEDIUM: "Medium", UrgencyLevel.LOW: "Low"},
    "es": {UrgencyLevel.HIGH: "Alta", UrgencyLevel.MEDIUM: "Media", UrgencyLevel.LOW: "Baja"},
}
_URGENCY_BY_LABEL = {
    label: level for labels in URGENCY_LABELS.values() for level, label in labels.items()
}


@dataclass
class MediaAttachment:
    raw_bytes: bytes
    mime_type: str
    file_name: str = "attachment"
    origin_size_bytes: int = -1

    def __post_init__(self) -> None:
        if self.origin_size_bytes < 0:
            self.origin_size_bytes = len(self.raw_bytes)

    def read_bytes(self) -> bytes:
        return self.raw_bytes


@dataclass
class AudioClip:
    raw_bytes: bytes
    mime_type: str = DEFAULT_AUDIO_MIME_TYPE

    def read_bytes(self) -> bytes:
        return self.raw_bytes


@dataclass(frozen=True)
class EncodedPart:
    base64_data: str
    mime_type: str

    def as_inline_data(self) -> dict[str, dict[str, str]]:
        return {"inlineData": {"mimeType": self.mime_type, "data": self.base64_data}}


@dataclass
class SymptomSubmission:
    free_text: str = ""
    attachments: list[MediaAttachment] = field(default_factory=list)
    voice_clip: AudioClip | None = None

    @property
    def has_content(self) -> bool:
        return bool(self.free_text.strip()) or bool(self.attachments) or self.voice_clip is not None


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class ClinicalSummary(_CamelModel):
    duration: str
    pain_level: str
    key_symptoms: list[str]


class Diagnosis(_CamelModel):
    condition: str
    confidence: float = Field(ge=0, le=100)
    description: str


class AnalysisResult(_CamelModel):
    urgency: UrgencyLiteral
    urgency_reason: str
    clinical_summary: ClinicalSummary
    recommended_specialist: str
    referral_letter: str
    medical_advice: str
    warning_signs: list[str]
    diagnoses: list[Diagnosis] = Field(min_length=1)
    follow_up_questions: list[str]
    home_care_steps: list[str]
    visual_summary_description: str

    @property
    def urgency_level(self) -> UrgencyLevel:
        return _URGENCY_BY_LABEL[self.urgency]

    def context_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    role: ChatRole
    text: str
    timestamp: datetime
