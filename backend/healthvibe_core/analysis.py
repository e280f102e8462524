from __future__ import annotations

from loguru import logger
from pydantic import ValidationError

from .errors import AnalysisFailed, EmptyResponse, ParseError, ProviderError
from .gemini import GeminiClient, candidate_text, extract_json_object
from .models import AnalysisResult
from .request_builder import AnalysisRequest


def parse_analysis_result(response_text: str) -> AnalysisResult:
    if not response_text or not response_text.strip():
        raise EmptyResponse("No response received.")
    payload = extract_json_object(response_text)
    if payload is None:
        raise ParseError("Analysis response is not a JSON object.")
    try:
        return AnalysisResult.model_validate(payload)
    except ValidationError as exc:
        raise ParseError(f"Analysis response does not match the schema: {exc.error_count()} error(s).") from exc


class AnalysisClient:
    def __init__(self, gemini: GeminiClient, *, model: str, timeout_seconds: float) -> None:
        self.gemini = gemini
        self.model = model
        self.timeout_seconds = timeout_seconds

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        """Run one structured analysis call.

        Every failure, whether transport, empty body or schema mismatch, comes
        out as AnalysisFailed or one of its subclasses. No partial result is
        ever returned.
        """
        try:
            response_json = await self.gemini.generate_content(
                model=self.model,
                payload=request.to_payload(),
                timeout_seconds=self.timeout_seconds,
            )
        except ProviderError as exc:
            logger.warning("analysis call failed ({}): {}", self.model, exc)
            raise AnalysisFailed(str(exc)) from exc

        try:
            result = parse_analysis_result(candidate_text(response_json))
        except AnalysisFailed as exc:
            logger.warning("analysis response rejected ({}): {}", self.model, exc)
            raise
        logger.info(
            "analysis completed ({}): {} part(s), {} diagnosis(es)",
            self.model,
            len(request.parts) + 1,
            len(result.diagnoses),
        )
        return result
