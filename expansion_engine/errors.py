"""
Exception hierarchy for the engine.

Routes map NotFoundError to 404 and RunStateError to 409.
"""


class EngineError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(EngineError):
    """A required credential or setting is missing."""


class NotFoundError(EngineError):
    """A referenced record does not exist."""


class RunNotFoundError(NotFoundError):
    def __init__(self, run_id):
        self.run_id = run_id
        super().__init__(f"Run {run_id} not found")


class AccountNotFoundError(NotFoundError):
    def __init__(self, domain):
        self.domain = domain
        super().__init__(f"Customer not found for domain: {domain}")


class RunStateError(EngineError):
    """The run is in a state that does not allow the requested operation."""


class SearchLayerError(EngineError):
    """Search failed for a whole domain (provider unreachable or circuit open)."""


class ArticleFetchError(EngineError):
    """A single article could not be fetched or was rejected."""

    def __init__(self, url, reason):
        self.url = url
        self.reason = reason
        super().__init__(f"{reason}: {url}")


class LLMOutputError(EngineError):
    """The language model returned output that failed validation."""

    def __init__(self, message, raw=None):
        self.raw = raw
        super().__init__(message)


class EventExtractionError(LLMOutputError):
    """Extraction output for one article was malformed."""


class JudgmentValidationError(LLMOutputError):
    """Judge output for one account was malformed."""
