from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .config import normalize_language
from .encoding import encode_parts
from .models import URGENCY_LABELS, AudioClip, EncodedPart, MediaAttachment, UrgencyLevel

LANGUAGE_DIRECTIVES = {"es": "SPANISH", "en": "ENGLISH"}
ANALYSIS_TEMPERATURE = 0.1

_STRING = {"type": "STRING"}
_STRING_LIST = {"type": "ARRAY", "items": _STRING}

ANALYSIS_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "urgency": {
            "type": "STRING",
            "enum": ["High", "Medium", "Low", "Alta", "Media", "Baja"],
            "description": (
                "Medical urgency level. Return 'High'/'Medium'/'Low' if English, "
                "'Alta'/'Media'/'Baja' if Spanish."
            ),
        },
        "urgencyReason": _STRING,
        "clinicalSummary": {
            "type": "OBJECT",
            "properties": {
                "duration": _STRING,
                "painLevel": _STRING,
                "keySymptoms": _STRING_LIST,
            },
            "required": ["duration", "painLevel", "keySymptoms"],
        },
        "recommendedSpecialist": _STRING,
        "referralLetter": _STRING,
        "medicalAdvice": _STRING,
        "warningSigns": _STRING_LIST,
        "diagnoses": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "condition": _STRING,
                    "confidence": {"type": "NUMBER"},
                    "description": _STRING,
                },
                "required": ["condition", "confidence", "description"],
            },
        },
        "followUpQuestions": _STRING_LIST,
        "homeCareSteps": _STRING_LIST,
        "visualSummaryDescription": _STRING,
    },
    "required": [
        "urgency",
        "urgencyReason",
        "clinicalSummary",
        "recommendedSpecialist",
        "referralLetter",
        "medicalAdvice",
        "warningSigns",
        "diagnoses",
        "followUpQuestions",
        "homeCareSteps",
        "visualSummaryDescription",
    ],
}


def build_analysis_prompt(free_text: str, language: str) -> str:
    lang_text = LANGUAGE_DIRECTIVES[language]
    high_label = URGENCY_LABELS[language][UrgencyLevel.HIGH]
    return "\n".join(
        [
            "Act as a Senior Medical Consultant AI.",
            "",
            "TASK:",
            "1. Analyze provided TEXT.",
            "2. Analyze provided IMAGES/VIDEO for clinical signs.",
            "3. Listen to provided AUDIO (if any).",
            "",
            "OUTPUT REQUIREMENT:",
            f"- CRITICAL: The JSON response content MUST be in {lang_text}.",
            f"- If the patient writes in another language, translate the analysis to {lang_text}.",
            f'- If urgency is High, use "{high_label}".',
            f'- Generate a professional "Referral Letter" in {lang_text}.',
            "",
            "PATIENT INPUT:",
            f'"{free_text.strip()}"',
        ]
    )


@dataclass
class AnalysisRequest:
    language: str
    prompt: str
    parts: list[EncodedPart] = field(default_factory=list)
    system_instruction: str = ""
    response_schema: dict[str, Any] = field(default_factory=lambda: ANALYSIS_SCHEMA)
    temperature: float = ANALYSIS_TEMPERATURE

    def to_payload(self) -> dict[str, Any]:
        payload_parts: list[dict[str, Any]] = [{"text": self.prompt}]
        payload_parts.extend(part.as_inline_data() for part in self.parts)
        return {
            "contents": [{"role": "user", "parts": payload_parts}],
            "systemInstruction": {"parts": [{"text": self.system_instruction}]},
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": self.response_schema,
                "temperature": self.temperature,
            },
        }


async def build_analysis_request(
    free_text: str,
    attachments: list[MediaAttachment],
    voice_clip: AudioClip | None,
    language: str,
) -> AnalysisRequest:
    language = normalize_language(language)
    sources: list[MediaAttachment | AudioClip] = list(attachments)
    if voice_clip is not None:
        sources.append(voice_clip)
    parts = await encode_parts(sources)
    lang_text = LANGUAGE_DIRECTIVES[language]
    return AnalysisRequest(
        language=language,
        prompt=build_analysis_prompt(free_text, language),
        parts=parts,
        system_instruction=(
            f"You are HealthVibe AI. Analyze multimodal medical data. Output strictly in {lang_text}."
        ),
    )
