"""Error taxonomy for the cleanup pipeline.

Every error carries the HTTP status it maps to and a human-readable message.
``extra`` holds additive diagnostic fields that are merged into the JSON body
next to ``error``; they never replace the message.
"""
from typing import Any, Dict, Optional


class CleanupServiceError(Exception):
    """Base exception for everything the API reports to the client."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None, **extra: Any) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra: Dict[str, Any] = extra
        super().__init__(message)

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        body.update(self.extra)
        return body


class ClientInputError(CleanupServiceError):
    """Missing or malformed request payload."""

    status_code = 400


class QuotaExceededError(CleanupServiceError):
    """Daily limit for a quota capability has been reached."""

    status_code = 429


class BackendOverloadedError(CleanupServiceError):
    """Upstream kept reporting overload after retries and fallback."""

    status_code = 503

    def __init__(self, message: str = "The AI model is busy right now. Please try again shortly.", **extra: Any):
        extra.setdefault("retryAfter", 10)
        extra.setdefault("suggestion", "Turning high-quality mode off may improve the success rate")
        super().__init__(message, **extra)


class BackendRejectedError(CleanupServiceError):
    """Upstream answered with a non-overload failure status."""

    def __init__(self, status_code: int, message: Optional[str] = None, **extra: Any):
        if status_code == 429:
            message = "The AI API rate limit was reached. Please wait a moment and try again."
            extra.setdefault("retryAfter", 30)
        super().__init__(message or "Gemini API error", status_code=status_code, **extra)


class NoImageProducedError(CleanupServiceError):
    """Upstream succeeded but returned no image (e.g. a text-only refusal)."""

    status_code = 500

    def __init__(self, ai_response: Optional[str] = None):
        super().__init__(
            "Image generation failed. The AI returned text only.",
            aiResponse=ai_response[:200] if ai_response else None,
        )


class MissingApiKeyError(CleanupServiceError):
    """The Gemini API key is not configured."""

    status_code = 503

    def __init__(self):
        super().__init__("Gemini API key is not configured", code="MISSING_API_KEY")
