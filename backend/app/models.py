from typing import Any, Literal

from sqlmodel import Field, SQLModel

from app.agent.artifacts import DiagramKind

GENERATE_DESCRIPTION_MAX_CHARS = 5000
EDIT_INSTRUCTIONS_MAX_CHARS = 2000


# Request bodies are loosely typed so the routes can answer malformed input
# with field-level 400s instead of FastAPI's 422.
class DiagramGenerateRequest(SQLModel):
    description: Any = None
    diagram_type: Any = None


class DiagramEditRequest(SQLModel):
    plantuml: Any = None
    edit_instructions: Any = None


class DiagramRenderRequest(SQLModel):
    plantuml: Any = None
    format: Any = "svg"


class DiagramGenerateResponse(SQLModel):
    description: str
    plantuml: str
    diagram_type: DiagramKind


class DiagramEditResponse(SQLModel):
    plantuml: str
    changes: list[str] = Field(default_factory=list)
    diagram_type: DiagramKind


class DiagramRenderResponse(SQLModel):
    data: str = Field(description="SVG markup, or base64-encoded PNG")
    format: Literal["svg", "png"]


class DiagramKindInfo(SQLModel):
    diagram_type: DiagramKind
    template: str


class DiagramKindsPublic(SQLModel):
    data: list[DiagramKindInfo]
    count: int


# Generic message
class Message(SQLModel):
    message: str
