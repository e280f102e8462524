from __future__ import annotations

import asyncio
import io

import httpx
import pytest
from device_fakes import FakePlayer
from gemini_fakes import audio_response, pcm_base64, text_response
from scipy.io import wavfile

from healthvibe_core import SpeechClient, SynthesisUnavailable, WelcomeVoice, decode_pcm
from healthvibe_core.speech import PCM_SAMPLE_RATE


@pytest.fixture
def speech(gemini_client) -> SpeechClient:
    return SpeechClient(gemini_client, model="gemini-tts-test", voice="Fenrir", timeout_seconds=5.0)


def test_decode_pcm_scales_signed_samples():
    waveform = decode_pcm(pcm_base64([0, 16384, -32768, 32767]))

    assert waveform.sample_rate == PCM_SAMPLE_RATE == 24000
    assert waveform.channels == 1
    assert waveform.samples.tolist()[:3] == [0.0, 0.5, -1.0]
    assert waveform.samples[3] == pytest.approx(0.99997, abs=1e-5)
    assert waveform.duration_seconds == pytest.approx(4 / 24000)


@pytest.mark.parametrize("payload", ["AAAA", "", "not base64!!"])
def test_decode_pcm_rejects_malformed_payloads(payload):
    with pytest.raises(SynthesisUnavailable):
        decode_pcm(payload)


def test_waveform_serializes_to_wav():
    waveform = decode_pcm(pcm_base64([0, 8192]))

    rate, samples = wavfile.read(io.BytesIO(waveform.to_wav_bytes()))

    assert rate == 24000
    assert samples.tolist() == [0.0, 0.25]


def test_synthesize_welcome_requests_audio_with_voice(speech, fake_gemini):
    fake_gemini.queue(audio_response(pcm_base64([1, 2])))

    audio = asyncio.run(speech.synthesize_welcome("es"))

    assert audio == pcm_base64([1, 2])
    sent = fake_gemini.requests[0]
    assert "Doctor Health Vibe" in sent["contents"][0]["parts"][0]["text"]
    config = sent["generationConfig"]
    assert config["responseModalities"] == ["AUDIO"]
    assert config["speechConfig"]["voiceConfig"]["prebuiltVoiceConfig"]["voiceName"] == "Fenrir"
    assert fake_gemini.urls[0].endswith("/models/gemini-tts-test:generateContent")


def test_synthesize_without_audio_is_unavailable(speech, fake_gemini):
    fake_gemini.queue(text_response("I cannot speak right now."))

    with pytest.raises(SynthesisUnavailable):
        asyncio.run(speech.synthesize_welcome("en"))


def test_second_click_during_playback_is_ignored(speech, fake_gemini):
    fake_gemini.queue(audio_response(pcm_base64([0, 100, -100])), audio_response(pcm_base64([5])))
    player = FakePlayer()
    voice = WelcomeVoice(speech, player)

    assert asyncio.run(voice.play_welcome("en")) == "playing"
    assert voice.is_busy
    assert asyncio.run(voice.play_welcome("en")) == "ignored"
    assert len(player.played) == 1
    assert len(fake_gemini.requests) == 1

    player.finish()
    assert not voice.is_busy
    assert voice.has_played
    assert asyncio.run(voice.play_welcome("en")) == "playing"
    assert len(player.played) == 2


def test_concurrent_clicks_start_one_playback(speech, fake_gemini):
    async def slow_audio(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0.01)
        return httpx.Response(200, json=audio_response(pcm_base64([7, 7])))

    fake_gemini.queue(slow_audio)
    player = FakePlayer()
    voice = WelcomeVoice(speech, player)

    async def _clicks():
        return await asyncio.gather(*(voice.play_welcome("es") for _ in range(3)))

    outcomes = asyncio.run(_clicks())

    assert sorted(outcomes) == ["ignored", "ignored", "playing"]
    assert len(player.played) == 1


def test_synthesis_failure_releases_gate(speech, fake_gemini):
    fake_gemini.queue(httpx.Response(500, json={"error": {"message": "tts down"}}))
    voice = WelcomeVoice(speech, FakePlayer())

    assert asyncio.run(voice.play_welcome("en")) == "unavailable"
    assert not voice.is_busy
    assert not voice.has_played


def test_player_failure_releases_gate(speech, fake_gemini):
    fake_gemini.queue(audio_response(pcm_base64([1])))
    voice = WelcomeVoice(speech, FakePlayer(fail_with=RuntimeError("no output device")))

    assert asyncio.run(voice.play_welcome("en")) == "unavailable"
    assert not voice.is_busy
