"""Exception hierarchy shared across the pipeline, store and API clients."""

from __future__ import annotations


class ClixenError(Exception):
    """Base class for every error the CLI reports as a clean failure."""


class NoTemplateMatchError(ClixenError):
    """No stored template scored against the analyzed intent."""

    def __init__(
        self,
        message: str = (
            "No suitable template found for your request. "
            "Please try rephrasing or contact support."
        ),
    ) -> None:
        super().__init__(message)


class TemplateNotFoundError(ClixenError):
    """A template id was requested that the store does not hold."""

    def __init__(self, template_id: str) -> None:
        super().__init__(f"Failed to load template: {template_id} not found")
        self.template_id = template_id


class AgentOutputError(ClixenError):
    """An LLM agent's answer could not be parsed, even after one re-format request."""

    def __init__(self, agent: str, cause: Exception) -> None:
        super().__init__(f"{agent} returned output that could not be parsed: {cause}")
        self.agent = agent


class WorkflowValidationError(ClixenError):
    """An adapted workflow document is structurally unusable."""


class StoreError(ClixenError):
    """The template store (Supabase or local) failed to read or write."""


class N8nError(ClixenError):
    """The n8n REST API returned a non-2xx response."""

    def __init__(self, message: str, *, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class FirecrawlError(ClixenError):
    """The Firecrawl API rejected a request or returned an unsuccessful payload."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
