from __future__ import annotations

import json
from typing import Any

import httpx

from .errors import ProviderError, ProviderNotConfigured, ProviderTimeout

_CONNECT_TIMEOUT_SECONDS = 10.0


def provider_error_message(response: httpx.Response) -> str:
    message = response.text.strip()
    try:
        payload = response.json()
    except Exception:
        payload = None
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict):
            msg = err.get("message")
            if isinstance(msg, str) and msg.strip():
                return msg.strip()
        msg = payload.get("message")
        if isinstance(msg, str) and msg.strip():
            return msg.strip()
    return message or f"HTTP {response.status_code}"


def extract_json_object(raw_text: str) -> dict[str, Any] | None:
    text = (raw_text or "").strip()
    if not text:
        return None
    try:
        payload = json.loads(text)
        if isinstance(payload, dict):
            return payload
    except json.JSONDecodeError:
        pass

    # Tolerate a fenced or prefixed object by scanning for the first balanced one.
    for start_idx in [idx for idx, char in enumerate(text) if char == "{"]:
        depth = 0
        for end_idx in range(start_idx, len(text)):
            char = text[end_idx]
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
            if depth == 0:
                candidate = text[start_idx : end_idx + 1]
                try:
                    payload = json.loads(candidate)
                    if isinstance(payload, dict):
                        return payload
                except json.JSONDecodeError:
                    break
    return None


def _first_candidate_parts(response_json: dict[str, Any]) -> list[dict[str, Any]]:
    candidates = response_json.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return []
    first = candidates[0]
    if not isinstance(first, dict):
        return []
    content = first.get("content")
    if not isinstance(content, dict):
        return []
    parts = content.get("parts")
    if not isinstance(parts, list):
        return []
    return [part for part in parts if isinstance(part, dict)]


def candidate_text(response_json: dict[str, Any]) -> str:
    texts: list[str] = []
    for part in _first_candidate_parts(response_json):
        if part.get("thought"):
            continue
        text_value = part.get("text")
        if isinstance(text_value, str):
            texts.append(text_value)
    return "".join(texts)


def candidate_inline_data(response_json: dict[str, Any]) -> str | None:
    for part in _first_candidate_parts(response_json):
        inline = part.get("inlineData") or part.get("inline_data")
        if isinstance(inline, dict):
            data = inline.get("data")
            if isinstance(data, str) and data:
                return data
    return None


class GeminiClient:
    """Thin REST client for the generateContent endpoint.

    `transport` is handed to httpx unchanged; tests plug an httpx.MockTransport in.
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.transport = transport

    def _require_api_key(self) -> str:
        api_key = (self.api_key or "").strip()
        if not api_key:
            raise ProviderNotConfigured("Gemini API key is not configured.", status_code=503)
        return api_key

    async def generate_content(
        self,
        *,
        model: str,
        payload: dict[str, Any],
        timeout_seconds: float,
    ) -> dict[str, Any]:
        api_key = self._require_api_key()
        headers = {"x-goog-api-key": api_key, "Content-Type": "application/json"}
        url = f"{self.base_url}/models/{model}:generateContent"
        timeout = httpx.Timeout(timeout_seconds, connect=min(_CONNECT_TIMEOUT_SECONDS, timeout_seconds))
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
                response = await client.post(url, headers=headers, json=payload)
        except httpx.TimeoutException as exc:
            raise ProviderTimeout("Gemini request timed out.", status_code=504) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Failed to reach Gemini: {exc}", status_code=502) from exc

        if response.status_code >= 400:
            provider_error = provider_error_message(response)
            if response.status_code in {401, 403}:
                raise ProviderNotConfigured(
                    f"Gemini API key was rejected by provider: {provider_error}",
                    status_code=503,
                )
            raise ProviderError(f"Gemini request failed: {provider_error}", status_code=response.status_code)

        try:
            response_json = response.json()
        except json.JSONDecodeError as exc:
            raise ProviderError("Gemini returned invalid JSON.", status_code=502) from exc
        if not isinstance(response_json, dict):
            raise ProviderError("Gemini returned an unexpected payload.", status_code=502)
        return response_json
