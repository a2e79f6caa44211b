import re
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DiagramKind(str, Enum):
    COMPONENT = "component"
    DEPLOYMENT = "deployment"
    CLASS = "class"
    SEQUENCE = "sequence"
    USECASE = "usecase"
    ACTIVITY = "activity"
    STATE = "state"


class DiagramRequest(BaseModel):
    """Incoming generation request after the route layer has validated it."""
    model_config = ConfigDict(frozen=True)

    description: str = Field(max_length=5000)
    kind: DiagramKind = DiagramKind.COMPONENT


class EditRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    plantuml: str
    instructions: str = Field(max_length=2000)


class DiagramCandidate(BaseModel):
    """Structured reply the model must produce for a generation attempt."""
    description: str = Field(
        description="Detailed architecture explanation in markdown format with headings, bullet points, bold and italic text where appropriate"
    )
    plantuml: str = Field(
        description="Valid PlantUML code that follows the specific syntax for the requested diagram type, starting with @startuml and ending with @enduml"
    )
    diagram_type: DiagramKind | None = Field(
        default=None,
        description="The exact diagram type that was requested and generated",
    )

    @field_validator("diagram_type", mode="before")
    @classmethod
    def _lenient_kind(cls, value: Any) -> DiagramKind | None:
        # Unrecognised labels become None; the orchestrator fills in the requested kind.
        if isinstance(value, DiagramKind):
            return value
        if not isinstance(value, str):
            return None
        normalized = re.sub(r"[\s_-]+", "", value).lower()
        try:
            return DiagramKind(normalized)
        except ValueError:
            return None


class DiagramEdit(BaseModel):
    """Structured reply the model must produce for an edit attempt."""
    plantuml: str = Field(description="Modified PlantUML code with the requested changes applied")
    changes: str = Field(description="Summary of the changes made to the diagram")


class DiagramEditResult(BaseModel):
    plantuml: str
    changes: list[str] = Field(default_factory=list)
    diagram_type: DiagramKind


class ValidationVerdict(BaseModel):
    valid: bool = True
    errors: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)

    @classmethod
    def from_findings(cls, errors: list[str], suggestions: list[str]) -> "ValidationVerdict":
        return cls(valid=not errors, errors=list(errors), suggestions=list(suggestions))

    def merged_with(self, other: "ValidationVerdict") -> "ValidationVerdict":
        return ValidationVerdict.from_findings(
            self.errors + other.errors,
            self.suggestions + other.suggestions,
        )


class AttemptContext(BaseModel):
    """What the prompt builder knows about the attempts made so far."""
    model_config = ConfigDict(frozen=True)

    attempt: int = Field(default=1, ge=1)
    max_attempts: int = Field(default=2, ge=1)
    last_error: str | None = None
    last_verdict: ValidationVerdict | None = None

    @property
    def is_retry(self) -> bool:
        return self.attempt > 1 and (self.last_error is not None or self.last_verdict is not None)


class PipelineEvent(BaseModel):
    """Progress event emitted by the orchestrator's attempt loop."""
    status: Literal["cached", "attempt", "retry", "completed", "error"]
    message: str
    attempt: int | None = None
    max_attempts: int | None = None
    errors: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    artifact: dict[str, Any] | None = None
    result: Any = Field(default=None, exclude=True)
