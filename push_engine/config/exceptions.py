"""Configuration error type."""

from typing import Iterable, List, Optional


class ConfigurationError(Exception):
    """Raised when engine configuration is missing or invalid.

    Carries a list of individual problems and optional remediation hints so
    that the CLI can print everything wrong with a config file at once.
    """

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        self.message = message
        self.errors = list(errors or [])
        self.suggestions = list(suggestions or [])
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        lines = [self.message]
        if self.errors:
            lines.append("\nValidation Errors:")
            lines.extend(f"  {i}. {error}" for i, error in enumerate(self.errors, 1))
        if self.suggestions:
            lines.append("\nSuggestions:")
            lines.extend(f"  - {hint}" for hint in self.suggestions)
        return "\n".join(lines)

    @classmethod
    def from_pydantic(
        cls, message: str, errors: Iterable[dict], suggestions: Optional[List[str]] = None
    ) -> "ConfigurationError":
        """Build an error from ``pydantic.ValidationError.errors()`` output."""
        problems = []
        for error in errors:
            path = " -> ".join(str(loc) for loc in error.get("loc", ())) or "<root>"
            if error.get("type") == "missing":
                problems.append(f"Missing required field: {path}")
            else:
                problems.append(f"{path}: {error.get('msg')}")
        return cls(message, errors=problems, suggestions=suggestions)
