class SubmissionError(Exception):
    """Base class for failures contained at a single resource."""


class TransportError(SubmissionError):
    """Raised when a resource could not be delivered to the server."""

    def __init__(self, url, cause):
        self.url = url
        self.cause = cause
        super().__init__(f'POST {url} failed: {cause}')


class ResponseExtractionError(SubmissionError):
    """Raised when a server response cannot be turned into a Reference."""


class ConfigurationError(Exception):
    """Raised for a missing or malformed configuration file."""


class RenderError(SubmissionError):
    """Raised when a node of the input tree does not make a valid resource."""
