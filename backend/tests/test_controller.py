from __future__ import annotations

import asyncio
import json

import pytest
from gemini_fakes import analysis_payload, text_response

from healthvibe_core import (
    AnalysisClient,
    AnalysisInProgress,
    AnalysisState,
    ChatSessionManager,
    EmptyResponse,
    EmptySubmission,
    EncodingError,
    Err,
    MediaAttachment,
    Ok,
    SymptomSubmission,
    TriageController,
)
from healthvibe_core.controller import ERROR_TITLES


class UnreadableAttachment(MediaAttachment):
    def read_bytes(self) -> bytes:
        raise OSError("file vanished")


@pytest.fixture
def controller(gemini_client) -> TriageController:
    return TriageController(
        AnalysisClient(gemini_client, model="gemini-test", timeout_seconds=5.0),
        ChatSessionManager(gemini_client, model="gemini-chat-test", timeout_seconds=5.0),
        language="en",
    )


def test_successful_submission_reaches_complete(controller, fake_gemini):
    fake_gemini.queue(text_response(json.dumps(analysis_payload())))
    assert controller.status is AnalysisState.IDLE

    outcome = asyncio.run(controller.submit(SymptomSubmission(free_text="fever and cough, 3 days")))

    assert isinstance(outcome, Ok)
    assert controller.status is AnalysisState.COMPLETE
    assert controller.result is outcome.value
    assert controller.error is None


def test_empty_response_leads_to_error_then_reset(controller, fake_gemini):
    fake_gemini.queue(text_response(json.dumps(analysis_payload())), text_response(""))
    asyncio.run(controller.submit(SymptomSubmission(free_text="rash")))

    outcome = asyncio.run(controller.submit(SymptomSubmission(free_text="rash again")))

    assert isinstance(outcome, Err)
    assert isinstance(outcome.error, EmptyResponse)
    assert controller.status is AnalysisState.ERROR
    assert controller.error == ERROR_TITLES["en"]
    assert controller.result is None
    assert controller.chat_session() is None

    controller.reset()
    assert controller.status is AnalysisState.IDLE
    assert controller.result is None
    assert controller.error is None


def test_unreadable_attachment_is_an_error_outcome(controller, fake_gemini):
    attachment = UnreadableAttachment(raw_bytes=b"", mime_type="image/png", file_name="gone.png")

    outcome = asyncio.run(controller.submit(SymptomSubmission(attachments=[attachment])))

    assert isinstance(outcome, Err)
    assert isinstance(outcome.error, EncodingError)
    assert controller.status is AnalysisState.ERROR
    assert fake_gemini.requests == []


def test_empty_submission_is_refused_before_any_call(controller, fake_gemini):
    with pytest.raises(EmptySubmission):
        asyncio.run(controller.submit(SymptomSubmission(free_text="  ")))
    assert controller.status is AnalysisState.IDLE
    assert fake_gemini.requests == []


def test_second_submission_while_analyzing_is_refused(controller):
    controller.status = AnalysisState.ANALYZING

    with pytest.raises(AnalysisInProgress):
        asyncio.run(controller.submit(SymptomSubmission(free_text="headache")))


def test_unexpected_failure_does_not_leave_controller_analyzing(controller, fake_gemini, monkeypatch):
    async def broken_analyze(request):
        raise RuntimeError("unexpected decoder crash")

    monkeypatch.setattr(controller.analysis, "analyze", broken_analyze)

    with pytest.raises(RuntimeError):
        asyncio.run(controller.submit(SymptomSubmission(free_text="headache")))
    assert controller.status is AnalysisState.ERROR
    assert controller.error == ERROR_TITLES["en"]

    monkeypatch.undo()
    fake_gemini.queue(text_response(json.dumps(analysis_payload())))
    outcome = asyncio.run(controller.submit(SymptomSubmission(free_text="headache")))
    assert isinstance(outcome, Ok)
    assert controller.status is AnalysisState.COMPLETE


def test_submission_uses_current_language(controller, fake_gemini):
    fake_gemini.queue(text_response(json.dumps(analysis_payload(urgency="Baja"))))
    controller.set_language("es")

    asyncio.run(controller.submit(SymptomSubmission(free_text="tos")))

    assert "SPANISH" in fake_gemini.requests[0]["systemInstruction"]["parts"][0]["text"]
    assert controller.error is None


def test_chat_session_follows_result_and_language(controller, fake_gemini):
    assert controller.chat_session() is None
    fake_gemini.queue(text_response(json.dumps(analysis_payload())), text_response("Rest and fluids."))
    asyncio.run(controller.submit(SymptomSubmission(free_text="fever")))

    session = controller.chat_session()
    assert session is not None
    assert controller.chat_session() is session

    user_message, reply = asyncio.run(controller.send_chat("What should I do?"))
    assert (user_message.role, reply.text) == ("user", "Rest and fluids.")

    controller.set_language("es")
    spanish = controller.chat_session()
    assert spanish is not session
    assert spanish.language == "es"
    assert len(spanish.transcript) == 1


def test_invalid_language_is_rejected(controller):
    with pytest.raises(ValueError):
        controller.set_language("de")
    assert controller.language == "en"
