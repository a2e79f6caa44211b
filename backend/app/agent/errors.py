from app.agent.artifacts import ValidationVerdict


class DiagramError(Exception):
    """Base class for diagram pipeline failures."""

    retriable: bool = False


class ConfigurationError(DiagramError):
    """The model provider is not configured (for example a missing API key)."""


class ModelInvocationError(DiagramError):
    """Calling the model provider failed for a reason other than validation."""


class ModelTimeoutError(ModelInvocationError):
    retriable = True


class StructuredOutputError(ModelInvocationError):
    """The model reply could not be parsed into the required response shape."""


class ValidationFailure(DiagramError):
    retriable = True
    stage = "validation"

    def __init__(self, verdict: ValidationVerdict):
        self.verdict = verdict
        super().__init__(f"PlantUML {self.stage} validation failed: {', '.join(verdict.errors)}")


class SyntaxValidationError(ValidationFailure):
    stage = "syntax"


class RenderValidationError(ValidationFailure):
    stage = "render"


class RetryExhaustedError(DiagramError):
    """Every attempt in the budget failed validation."""

    def __init__(
        self,
        *,
        operation: str,
        attempts: int,
        errors: list[str],
        suggestions: list[str],
        last_plantuml: str = "",
    ):
        self.operation = operation
        self.attempts = attempts
        self.errors = list(errors)
        self.suggestions = list(suggestions)
        self.last_plantuml = last_plantuml
        super().__init__(self._build_message())

    def _build_message(self) -> str:
        message = f"Failed to {self.operation} valid PlantUML after {self.attempts} attempts."
        if self.errors:
            message += "\n\nFinal validation errors:\n" + "\n".join(f"• {e}" for e in self.errors)
        if self.suggestions:
            message += "\n\nSuggested fixes:\n" + "\n".join(f"• {s}" for s in self.suggestions)
        if self.last_plantuml:
            message += f"\n\nLast PlantUML attempt:\n{self.last_plantuml}"
        return message


class PlantUMLEncodeError(DiagramError):
    pass


class RenderError(DiagramError):
    """The rendering service could not produce an image."""

    def __init__(self, message: str, *, reason: str, status_code: int | None = None):
        self.reason = reason
        self.status_code = status_code
        super().__init__(message)
