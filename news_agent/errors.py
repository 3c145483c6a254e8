"""
Pipeline Errors

Exception taxonomy shared by the extraction, normalization, indexing and
query components.
"""


class NewsAgentError(Exception):
    """Base class for all pipeline failures."""
    pass


class FetchError(NewsAgentError):
    """Raised when an article URL cannot be fetched as textual content."""
    pass


class ModelInvocationError(NewsAgentError):
    """Raised when a generation or embedding call fails."""
    pass


class MalformedModelOutput(NewsAgentError):
    """Raised when a model response does not match the expected JSON schema."""

    def __init__(self, message: str, raw_output: str = ""):
        super().__init__(message)
        self.raw_output = raw_output


class IndexOperationError(NewsAgentError):
    """Raised when embedding or upserting an article into the vector store fails."""
    pass


class ValidationError(NewsAgentError):
    """Raised when a request query is missing or invalid."""
    pass
