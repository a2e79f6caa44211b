import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, HTTPException
from sse_starlette.sse import EventSourceResponse

from app.agent.artifacts import DiagramKind, DiagramRequest, PipelineEvent
from app.agent.errors import (
    ConfigurationError,
    DiagramError,
    PlantUMLEncodeError,
    RenderError,
    RetryExhaustedError,
)
from app.agent.plantuml_validator import validate_structure
from app.agent.prompts.diagram import DIAGRAM_TEMPLATES
from app.api.deps import OrchestratorDep, RenderCacheDep, RendererDep
from app.core.cache import render_cache_key
from app.models import (
    EDIT_INSTRUCTIONS_MAX_CHARS,
    GENERATE_DESCRIPTION_MAX_CHARS,
    DiagramEditRequest,
    DiagramEditResponse,
    DiagramGenerateRequest,
    DiagramGenerateResponse,
    DiagramKindInfo,
    DiagramKindsPublic,
    DiagramRenderRequest,
    DiagramRenderResponse,
)

router = APIRouter()
logger = logging.getLogger(__name__)

RENDER_FORMATS = ("svg", "png")


def _require_text(value: Any, *, label: str, max_chars: int | None = None) -> str:
    if not isinstance(value, str) or not value:
        raise HTTPException(status_code=400, detail=f"{label} is required and must be a string")
    if not value.strip():
        raise HTTPException(status_code=400, detail=f"{label} cannot be empty")
    if max_chars is not None and len(value) > max_chars:
        raise HTTPException(
            status_code=400,
            detail=f"{label} is too long (maximum {max_chars} characters)",
        )
    return value.strip()


def _parse_kind(value: Any) -> DiagramKind:
    if value is None or value == "":
        return DiagramKind.COMPONENT
    try:
        return DiagramKind(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid diagram type") from None


def _require_valid_structure(plantuml: str) -> None:
    verdict = validate_structure(plantuml)
    if not verdict.valid:
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid PlantUML code provided", "validation_errors": verdict.errors},
        )


def _http_error_for(exc: DiagramError, *, action: str) -> HTTPException:
    if isinstance(exc, ConfigurationError):
        logger.error("AI service not configured: %s", exc)
        return HTTPException(
            status_code=500,
            detail="AI service not configured. Please check environment variables.",
        )
    if isinstance(exc, RetryExhaustedError):
        return HTTPException(
            status_code=502,
            detail={
                "error": (
                    f"Failed to produce a valid PlantUML diagram after multiple attempts while {action}. "
                    "Please try rephrasing your request or try again later."
                ),
                "details": str(exc),
            },
        )
    return HTTPException(status_code=502, detail=f"AI service error: {exc}")


async def _event_stream(events: AsyncIterator[PipelineEvent]) -> AsyncIterator[str]:
    try:
        async for event in events:
            yield event.model_dump_json()
    except DiagramError as exc:
        logger.error("Diagram stream failed: %s", exc)
        yield PipelineEvent(status="error", message=str(exc)).model_dump_json()


@router.get("/kinds", response_model=DiagramKindsPublic)
async def list_diagram_kinds() -> Any:
    data = [DiagramKindInfo(diagram_type=kind, template=DIAGRAM_TEMPLATES[kind]) for kind in DiagramKind]
    return DiagramKindsPublic(data=data, count=len(data))


@router.post("/generate", response_model=DiagramGenerateResponse)
async def generate_diagram(payload: DiagramGenerateRequest, orchestrator: OrchestratorDep) -> Any:
    """
    Generate an architecture explanation and a validated PlantUML diagram.
    """
    description = _require_text(
        payload.description,
        label="Description",
        max_chars=GENERATE_DESCRIPTION_MAX_CHARS,
    )
    kind = _parse_kind(payload.diagram_type)

    try:
        candidate = await orchestrator.generate(description, kind)
    except DiagramError as exc:
        logger.error("Error in /diagrams/generate: %s", exc)
        raise _http_error_for(exc, action="generating the diagram") from exc

    return DiagramGenerateResponse(
        description=candidate.description,
        plantuml=candidate.plantuml,
        diagram_type=candidate.diagram_type or kind,
    )


@router.post("/generate/stream")
async def generate_diagram_stream(payload: DiagramGenerateRequest, orchestrator: OrchestratorDep):
    """
    Same as /generate but streams attempt progress as Server-Sent Events.
    The final `completed` (or `cached`) event carries the diagram in `artifact`.
    """
    description = _require_text(
        payload.description,
        label="Description",
        max_chars=GENERATE_DESCRIPTION_MAX_CHARS,
    )
    kind = _parse_kind(payload.diagram_type)
    request = DiagramRequest(description=description, kind=kind)
    return EventSourceResponse(_event_stream(orchestrator.iter_generate(request)))


@router.post("/edit", response_model=DiagramEditResponse)
async def edit_diagram(payload: DiagramEditRequest, orchestrator: OrchestratorDep) -> Any:
    """
    Apply plain-English edit instructions to an existing diagram.
    """
    plantuml = _require_text(payload.plantuml, label="PlantUML code")
    instructions = _require_text(
        payload.edit_instructions,
        label="Edit instructions",
        max_chars=EDIT_INSTRUCTIONS_MAX_CHARS,
    )
    _require_valid_structure(plantuml)

    try:
        result = await orchestrator.edit(plantuml, instructions)
    except DiagramError as exc:
        logger.error("Error in /diagrams/edit: %s", exc)
        raise _http_error_for(exc, action="editing the diagram") from exc

    return DiagramEditResponse(
        plantuml=result.plantuml,
        changes=result.changes,
        diagram_type=result.diagram_type,
    )


@router.post("/render", response_model=DiagramRenderResponse)
async def render_diagram(
    payload: DiagramRenderRequest,
    renderer: RendererDep,
    render_cache: RenderCacheDep,
) -> Any:
    """
    Render PlantUML through the PlantUML server. SVG is returned as markup, PNG as base64.
    """
    plantuml = _require_text(payload.plantuml, label="PlantUML code")
    fmt = payload.format or "svg"
    if fmt not in RENDER_FORMATS:
        raise HTTPException(status_code=400, detail="Invalid format. Supported formats: svg, png")
    _require_valid_structure(plantuml)

    cache_key = render_cache_key(plantuml, fmt)
    cached = render_cache.get(cache_key)
    if cached is not None:
        return DiagramRenderResponse(data=cached, format=fmt)

    try:
        data = await renderer.render(plantuml, fmt)
    except RenderError as exc:
        logger.error("Error in /diagrams/render: %s", exc)
        if exc.reason == "network":
            raise HTTPException(
                status_code=503,
                detail="Unable to reach PlantUML rendering service. Please try again later.",
            ) from exc
        if exc.reason == "timeout":
            raise HTTPException(
                status_code=408,
                detail="Rendering timeout. The diagram might be too complex.",
            ) from exc
        raise HTTPException(
            status_code=400,
            detail="Failed to render diagram. Please check your PlantUML syntax.",
        ) from exc
    except PlantUMLEncodeError as exc:
        raise HTTPException(status_code=400, detail=f"PlantUML processing error: {exc}") from exc

    render_cache.set(cache_key, data)
    return DiagramRenderResponse(data=data, format=fmt)
