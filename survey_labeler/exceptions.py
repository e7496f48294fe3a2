"""Custom exceptions for the survey labeler."""


class SurveyLabelerError(Exception):
    """Base exception for all survey labeler errors."""
    pass


class ConfigError(SurveyLabelerError):
    """Invalid rules document or uncompilable pattern. Fatal before any scan."""

    def __init__(self, message: str, field_name: str = None):
        self.field_name = field_name
        if field_name:
            message = f"{field_name}: {message}"
        super().__init__(message)


class ScanError(SurveyLabelerError):
    """A scan root could not be read at all."""

    def __init__(self, message: str, path=None):
        self.path = path
        super().__init__(message)


class SurveyIdError(SurveyLabelerError):
    """No survey base key could be derived for a single-pair run."""
    pass


class OutputWriteError(SurveyLabelerError):
    """A report file could not be written. The run is not complete."""

    def __init__(self, message: str, path=None, written=None):
        self.path = path
        # Reports completed before the failure; they stay on disk
        self.written = list(written or [])
        super().__init__(message)
