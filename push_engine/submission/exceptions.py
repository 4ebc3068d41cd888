"""Exceptions for the submission (request intake) layer."""


class SubmissionError(Exception):
    """Base exception for request intake errors."""

    pass


class SubmissionFormatError(SubmissionError):
    """A request file could not be parsed or does not describe valid requests."""

    def __init__(self, message: str, source: str = "") -> None:
        """Initialize with the offending file.

        Args:
            message: Human-readable error message
            source: Path or name of the request file
        """
        super().__init__(f"{source}: {message}" if source else message)
        self.source = source
