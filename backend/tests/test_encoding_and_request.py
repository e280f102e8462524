from __future__ import annotations

import asyncio
import base64

import pytest

from healthvibe_core import (
    ANALYSIS_SCHEMA,
    AudioClip,
    EncodingError,
    MediaAttachment,
    build_analysis_request,
    encode_part,
    encode_parts,
)


class BrokenSource:
    mime_type = "image/png"

    def read_bytes(self) -> bytes:
        raise OSError("disk went away")


def test_encode_roundtrip_is_byte_identical():
    raw = bytes(range(256)) * 3
    part = encode_part(MediaAttachment(raw_bytes=raw, mime_type="image/png"))

    assert part.mime_type == "image/png"
    assert base64.b64decode(part.base64_data) == raw


def test_encode_falls_back_to_default_audio_type():
    part = encode_part(AudioClip(raw_bytes=b"voice", mime_type=""))
    assert part.mime_type == "audio/webm"


def test_encode_parts_preserves_order():
    sources = [
        MediaAttachment(raw_bytes=b"first", mime_type="image/jpeg"),
        MediaAttachment(raw_bytes=b"second", mime_type="video/mp4"),
        AudioClip(raw_bytes=b"third"),
    ]

    parts = asyncio.run(encode_parts(sources))

    assert [base64.b64decode(part.base64_data) for part in parts] == [b"first", b"second", b"third"]
    assert [part.mime_type for part in parts] == ["image/jpeg", "video/mp4", "audio/webm"]


def test_single_read_failure_fails_whole_batch():
    sources = [MediaAttachment(raw_bytes=b"ok", mime_type="image/jpeg"), BrokenSource()]

    with pytest.raises(EncodingError):
        asyncio.run(encode_parts(sources))


def test_request_orders_attachments_before_voice_clip():
    attachments = [
        MediaAttachment(raw_bytes=b"img", mime_type="image/jpeg"),
        MediaAttachment(raw_bytes=b"vid", mime_type="video/mp4"),
    ]
    voice = AudioClip(raw_bytes=b"wav", mime_type="audio/wav")

    request = asyncio.run(build_analysis_request("swollen ankle", attachments, voice, "en"))
    payload = request.to_payload()
    parts = payload["contents"][0]["parts"]

    assert "text" in parts[0]
    assert [part["inlineData"]["mimeType"] for part in parts[1:]] == ["image/jpeg", "video/mp4", "audio/wav"]
    assert base64.b64decode(parts[3]["inlineData"]["data"]) == b"wav"


def test_request_carries_language_directive_and_schema():
    request = asyncio.run(build_analysis_request("me duele la cabeza", [], None, "es"))
    payload = request.to_payload()

    assert "SPANISH" in request.prompt
    assert '"Alta"' in request.prompt
    assert '"me duele la cabeza"' in request.prompt
    assert "SPANISH" in payload["systemInstruction"]["parts"][0]["text"]
    config = payload["generationConfig"]
    assert config["responseMimeType"] == "application/json"
    assert config["temperature"] == pytest.approx(0.1)
    assert config["responseSchema"] is ANALYSIS_SCHEMA
    assert len(payload["contents"][0]["parts"]) == 1


def test_english_request_uses_english_literals():
    request = asyncio.run(build_analysis_request("fever and cough, 3 days", [], None, "en"))

    assert "ENGLISH" in request.prompt
    assert '"High"' in request.prompt


def test_schema_requires_every_result_field():
    required = set(ANALYSIS_SCHEMA["required"])
    assert required == set(ANALYSIS_SCHEMA["properties"])
    assert set(ANALYSIS_SCHEMA["properties"]["urgency"]["enum"]) == {"High", "Medium", "Low", "Alta", "Media", "Baja"}
    diagnosis_item = ANALYSIS_SCHEMA["properties"]["diagnoses"]["items"]
    assert diagnosis_item["required"] == ["condition", "confidence", "description"]


def test_unknown_language_is_rejected():
    with pytest.raises(ValueError):
        asyncio.run(build_analysis_request("text", [], None, "fr"))
