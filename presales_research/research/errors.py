from __future__ import annotations


class ResearchError(Exception):
    """Base class for failures raised by the research pipeline."""


class ModelCallError(ResearchError):
    """A model-service call failed for a reason other than timeout/availability."""

    reason = "failed"

    def __init__(self, model: str, message: str):
        self.model = model
        super().__init__(message)


class ModelUnavailableError(ModelCallError):
    """The requested model does not exist or is not enabled for this key."""

    reason = "unavailable"


class ModelTimeoutError(ModelCallError):
    reason = "timed out"

    def __init__(self, model: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(model, f"{model} did not respond within {timeout_seconds:g}s")


class FallbackExhaustedError(ResearchError):
    """Both the primary and the fallback attempt failed."""

    def __init__(self, primary: ModelCallError, fallback: ModelCallError | None):
        self.primary = primary
        self.fallback = fallback
        super().__init__("Research failed: no model was able to complete the request.")

    @property
    def details(self) -> str:
        parts = [f"primary ({self.primary.model}) {self.primary.reason}: {self.primary}"]
        if self.fallback is not None:
            parts.append(f"fallback ({self.fallback.model}) {self.fallback.reason}: {self.fallback}")
        else:
            parts.append("fallback not attempted")
        return "; ".join(parts)


class TransportClosedError(ResearchError):
    """The caller went away; remaining work is abandoned without a terminal event."""
