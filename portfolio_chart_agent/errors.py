class ChartAgentError(Exception):
    """Base class for errors raised by the chart agent pipeline."""


class InputValidationError(ChartAgentError):
    """The inbound request (or a query derived from it) is unusable."""


class ConfigurationError(ChartAgentError):
    """A required setting such as an API key is missing."""


class UpstreamError(ChartAgentError):
    """A collaborating service answered with a non-2xx status."""

    def __init__(self, status_code: int | None, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class AuthenticationError(UpstreamError):
    def __init__(self, message: str = "Invalid API key or authentication failed"):
        super().__init__(401, message)


class RateLimitError(UpstreamError):
    def __init__(self, message: str = "Rate limit exceeded. Please try again later."):
        super().__init__(429, message)


class ChartValidationError(ChartAgentError):
    """The model's chart tool call could not be repaired into a valid payload."""

    def __init__(self, message: str, field: str | None = None, sample: str = ""):
        super().__init__(message)
        self.field = field
        self.sample = sample
