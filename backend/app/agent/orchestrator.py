import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from pydantic import BaseModel

from app.agent.artifacts import (
    AttemptContext,
    DiagramCandidate,
    DiagramEdit,
    DiagramEditResult,
    DiagramKind,
    DiagramRequest,
    EditRequest,
    PipelineEvent,
    ValidationVerdict,
)
from app.agent.errors import (
    ConfigurationError,
    DiagramError,
    RenderValidationError,
    RetryExhaustedError,
    SyntaxValidationError,
)
from app.agent.llm_client import LLMClient
from app.agent.plantuml_renderer import PlantUMLRenderer
from app.agent.plantuml_validator import QuoteMode, detect_diagram_kind, validate_plantuml
from app.agent.prompt_builder import build_edit_prompt, build_generate_prompt
from app.agent.prompts.diagram import EDIT_SYSTEM_PROMPT, GENERATE_SYSTEM_PROMPT
from app.core.cache import MemoryCache, diagram_cache_key
from app.core.config import settings

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=BaseModel)

SERVER_COMPATIBILITY_SUGGESTIONS = [
    "The syntax validation passed, but rendering failed - check for PlantUML server compatibility",
    "Ensure all diagram elements are properly formatted for the PlantUML server",
]


@dataclass
class Success(Generic[R]):
    reply: R


@dataclass
class RetriableFailure:
    verdict: ValidationVerdict
    error: DiagramError
    plantuml: str = ""


@dataclass
class FatalFailure:
    error: Exception


Outcome = Success | RetriableFailure | FatalFailure


def retry_delay(attempt: int, *, base: float | None = None, cap: float | None = None) -> float:
    """Linear backoff before attempt `attempt + 1`, capped."""
    base = settings.RETRY_DELAY_SECONDS if base is None else base
    cap = settings.RETRY_DELAY_CAP_SECONDS if cap is None else cap
    return min(base * attempt, cap)


def _extend_unique(target: list[str], items: list[str]) -> None:
    for item in items:
        if item not in target:
            target.append(item)


class DiagramOrchestrator:
    """
    Bounded generate -> validate -> render -> retry loop.

    Each attempt completes fully before the next one starts because its prompt
    depends on the previous verdict. A candidate is only returned after it has
    passed both the syntax validator and the renderer in the same attempt.
    """

    def __init__(
        self,
        *,
        llm: LLMClient | None = None,
        edit_llm: LLMClient | None = None,
        renderer: PlantUMLRenderer | None = None,
        cache: MemoryCache[DiagramCandidate] | None = None,
        max_attempts: int | None = None,
        quote_mode: QuoteMode | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.llm = llm or LLMClient(model_name=settings.MODEL_DEFAULT)
        self.edit_llm = edit_llm or (llm if llm is not None else LLMClient(model_name=settings.MODEL_EDIT))
        self.renderer = renderer or PlantUMLRenderer()
        self.cache = cache
        self.max_attempts = max(1, max_attempts if max_attempts is not None else settings.MAX_RETRIES)
        self.quote_mode: QuoteMode = quote_mode or settings.QUOTE_CHECK_MODE
        self._sleep = sleep

    @staticmethod
    def _require_credentials(llm: LLMClient) -> None:
        if not llm.has_credentials:
            raise ConfigurationError("Model API key is missing. Set LLM_API_KEY or GEMINI_API_KEY.")

    async def _attempt(
        self,
        *,
        llm: LLMClient,
        system_prompt: str,
        user_prompt: str,
        response_schema: type[R],
        temperature: float,
        kind: DiagramKind | None,
    ) -> Outcome:
        try:
            reply = await llm.generate_structured(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                response_schema=response_schema,
                temperature=temperature,
            )
        except DiagramError as exc:
            if not exc.retriable:
                return FatalFailure(exc)
            return RetriableFailure(
                verdict=ValidationVerdict.from_findings(
                    [str(exc)],
                    ["Produce a smaller, simpler diagram so the response completes in time"],
                ),
                error=exc,
            )

        plantuml = reply.plantuml
        logger.info("Model returned PlantUML (%s chars), validating syntax...", len(plantuml))

        syntax = validate_plantuml(plantuml, kind, quote_mode=self.quote_mode)
        if not syntax.valid:
            return RetriableFailure(verdict=syntax, error=SyntaxValidationError(syntax), plantuml=plantuml)

        logger.info("Syntax validation passed, checking rendering...")
        rendered = await self.renderer.validate(plantuml)
        if not rendered.valid:
            verdict = ValidationVerdict.from_findings(
                rendered.errors,
                rendered.suggestions + SERVER_COMPATIBILITY_SUGGESTIONS,
            )
            return RetriableFailure(verdict=verdict, error=RenderValidationError(verdict), plantuml=plantuml)

        return Success(reply)

    async def _run_attempts(
        self,
        *,
        operation: str,
        llm: LLMClient,
        system_prompt: str,
        build_prompt: Callable[[AttemptContext], str],
        response_schema: type[R],
        first_temperature: float,
        kind: DiagramKind | None,
    ) -> AsyncIterator[PipelineEvent]:
        all_errors: list[str] = []
        all_suggestions: list[str] = []
        last_plantuml = ""
        context = AttemptContext(attempt=1, max_attempts=self.max_attempts)

        logger.info("Starting diagram %s (max %s attempts)", operation, self.max_attempts)
        while True:
            attempt = context.attempt
            self._require_credentials(llm)
            yield PipelineEvent(
                status="attempt",
                message=f"Attempt {attempt}/{self.max_attempts}",
                attempt=attempt,
                max_attempts=self.max_attempts,
            )

            outcome = await self._attempt(
                llm=llm,
                system_prompt=system_prompt,
                user_prompt=build_prompt(context),
                response_schema=response_schema,
                temperature=first_temperature if attempt == 1 else settings.RETRY_TEMPERATURE,
                kind=kind,
            )

            if isinstance(outcome, Success):
                logger.info("Diagram %s succeeded on attempt %s", operation, attempt)
                yield PipelineEvent(
                    status="completed",
                    message=f"Valid diagram produced on attempt {attempt}",
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    result=outcome.reply,
                )
                return

            if isinstance(outcome, FatalFailure):
                logger.error("Non-retriable %s error: %s", operation, outcome.error)
                raise outcome.error

            _extend_unique(all_errors, outcome.verdict.errors)
            _extend_unique(all_suggestions, outcome.verdict.suggestions)
            last_plantuml = outcome.plantuml or last_plantuml
            logger.warning(
                "Attempt %s/%s failed: %s",
                attempt,
                self.max_attempts,
                "; ".join(outcome.verdict.errors),
            )

            if attempt >= self.max_attempts:
                logger.error("All %s %s attempts failed", self.max_attempts, operation)
                raise RetryExhaustedError(
                    operation=operation,
                    attempts=self.max_attempts,
                    errors=all_errors,
                    suggestions=all_suggestions,
                    last_plantuml=last_plantuml,
                )

            delay = retry_delay(attempt)
            yield PipelineEvent(
                status="retry",
                message=f"Attempt {attempt} failed validation; retrying in {delay:g}s",
                attempt=attempt,
                max_attempts=self.max_attempts,
                errors=list(outcome.verdict.errors),
                suggestions=list(outcome.verdict.suggestions),
            )
            await self._sleep(delay)
            context = AttemptContext(
                attempt=attempt + 1,
                max_attempts=self.max_attempts,
                last_error=str(outcome.error),
                last_verdict=outcome.verdict,
            )

    async def iter_generate(self, request: DiagramRequest) -> AsyncIterator[PipelineEvent]:
        kind = request.kind
        cache_key = diagram_cache_key(request.description, kind.value)
        cached = self.cache.get(cache_key) if self.cache is not None else None
        if cached is not None:
            logger.info("Serving cached %s diagram", kind.value)
            yield PipelineEvent(
                status="cached",
                message="Served from cache",
                artifact=cached.model_dump(mode="json"),
                result=cached,
            )
            return

        async for event in self._run_attempts(
            operation="generate",
            llm=self.llm,
            system_prompt=GENERATE_SYSTEM_PROMPT,
            build_prompt=lambda context: build_generate_prompt(request.description, kind, context),
            response_schema=DiagramCandidate,
            first_temperature=settings.GENERATE_TEMPERATURE,
            kind=kind,
        ):
            if event.status == "completed":
                candidate: DiagramCandidate = event.result
                if candidate.diagram_type != kind:
                    if candidate.diagram_type is not None:
                        logger.warning(
                            "Model reported %s for a %s request; keeping requested kind",
                            candidate.diagram_type.value,
                            kind.value,
                        )
                    candidate = candidate.model_copy(update={"diagram_type": kind})
                if self.cache is not None:
                    self.cache.set(cache_key, candidate)
                event = event.model_copy(update={"result": candidate, "artifact": candidate.model_dump(mode="json")})
            yield event

    async def generate(self, description: str, kind: DiagramKind = DiagramKind.COMPONENT) -> DiagramCandidate:
        request = DiagramRequest(description=description, kind=kind)
        result: DiagramCandidate | None = None
        async for event in self.iter_generate(request):
            if event.status in ("completed", "cached"):
                result = event.result
        if result is None:
            raise RuntimeError("Diagram generation ended without a result")
        return result

    async def iter_edit(self, request: EditRequest) -> AsyncIterator[PipelineEvent]:
        kind = detect_diagram_kind(request.plantuml)
        async for event in self._run_attempts(
            operation="edit",
            llm=self.edit_llm,
            system_prompt=EDIT_SYSTEM_PROMPT,
            build_prompt=lambda context: build_edit_prompt(request.plantuml, request.instructions, context, kind=kind),
            response_schema=DiagramEdit,
            first_temperature=settings.EDIT_TEMPERATURE,
            kind=None,
        ):
            if event.status == "completed":
                edit: DiagramEdit = event.result
                result = DiagramEditResult(
                    plantuml=edit.plantuml,
                    changes=[edit.changes] if edit.changes.strip() else [],
                    diagram_type=kind,
                )
                event = event.model_copy(update={"result": result, "artifact": result.model_dump(mode="json")})
            yield event

    async def edit(self, existing_plantuml: str, instructions: str) -> DiagramEditResult:
        request = EditRequest(plantuml=existing_plantuml, instructions=instructions)
        result: DiagramEditResult | None = None
        async for event in self.iter_edit(request):
            if event.status == "completed":
                result = event.result
        if result is None:
            raise RuntimeError("Diagram edit ended without a result")
        return result
