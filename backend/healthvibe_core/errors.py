from __future__ import annotations


class HealthVibeError(Exception):
    pass


class EmptySubmission(HealthVibeError):
    pass


class PermissionDenied(HealthVibeError):
    pass


class EncodingError(HealthVibeError):
    pass


class AnalysisFailed(HealthVibeError):
    pass


class EmptyResponse(AnalysisFailed):
    pass


class ParseError(AnalysisFailed):
    pass


class ChatTurnFailed(HealthVibeError):
    pass


class SynthesisUnavailable(HealthVibeError):
    pass


class ProviderError(HealthVibeError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProviderTimeout(ProviderError):
    pass


class ProviderNotConfigured(ProviderError):
    pass
