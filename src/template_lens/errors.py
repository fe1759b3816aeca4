from template_lens.transform.module import Range


class LensError(Exception):
    """Base class for errors raised by template-lens."""


class ConfigError(LensError):
    """Raised when a project's configuration is missing required values or is malformed."""


class TemplateSyntaxError(LensError):
    """Raised by the template parser when a template cannot be parsed.

    ``location`` is relative to the start of the template source text.
    """

    def __init__(self, message: str, location: Range) -> None:
        super().__init__(message)
        self.message = message
        self.location = location
