import json
import logging
import re
from typing import Literal, TypeVar

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from app.agent.errors import (
    ConfigurationError,
    ModelInvocationError,
    ModelTimeoutError,
    StructuredOutputError,
)
from app.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


def _extract_fenced_block(text: str) -> str | None:
    blocks = re.findall(r"```(?:json)?\s*(.*?)\s*```", text, re.DOTALL | re.IGNORECASE)
    return blocks[0].strip() if blocks else None


def _extract_json_object(text: str) -> str | None:
    """First balanced top-level JSON object in `text`, ignoring braces inside strings."""
    start_idx = text.find("{")
    if start_idx == -1:
        return None

    depth = 0
    in_string = False
    escape = False
    for i in range(start_idx, len(text)):
        ch = text[i]
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start_idx:i + 1]
    return None


def _json_candidates(raw_text: str) -> list[str]:
    text = (raw_text or "").strip()
    if not text:
        return []

    candidates = [text]
    fenced = _extract_fenced_block(text)
    if fenced:
        candidates.insert(0, fenced)
    balanced = _extract_json_object(text)
    if balanced:
        candidates.append(balanced)

    # dict.fromkeys keeps first-seen order
    return list(dict.fromkeys(c.strip() for c in candidates if c.strip()))


def parse_structured_reply(raw_text: str, response_schema: type[T]) -> T:
    """Parse a free-text model reply into `response_schema` or raise StructuredOutputError."""
    candidates = _json_candidates(raw_text)
    if not candidates:
        raise StructuredOutputError("Model returned empty content for structured response")

    parse_errors: list[str] = []
    for candidate in candidates:
        try:
            return response_schema.model_validate(json.loads(candidate, strict=False))
        except (json.JSONDecodeError, ValidationError) as exc:
            parse_errors.append(str(exc))
    raise StructuredOutputError(
        f"Unable to parse {response_schema.__name__} from model reply: "
        + " | ".join(parse_errors[:3])
    )


class LLMClient:
    """Provider-agnostic client for schema-constrained generation over the OpenAI API spec."""

    def __init__(
        self,
        model_name: str | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        response_format: Literal["json_schema", "prompt"] | None = None,
    ):
        self.model_name = model_name or settings.MODEL_DEFAULT
        self.api_key = api_key or settings.llm_api_key
        self.base_url = base_url or settings.LLM_BASE_URL
        self.timeout = timeout if timeout is not None else settings.LLM_TIMEOUT_SECONDS
        self.response_format = response_format or settings.LLM_RESPONSE_FORMAT
        self._client: AsyncOpenAI | None = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key)

    @property
    def client(self) -> AsyncOpenAI:
        if not self.has_credentials:
            raise ConfigurationError("Model API key is missing. Set LLM_API_KEY or GEMINI_API_KEY.")
        if self._client is None:
            self._client = AsyncOpenAI(
                base_url=self.base_url,
                api_key=self.api_key,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def _chat_completion_kwargs(self, *, temperature: float | None) -> dict:
        model_name = (self.model_name or "").lower()
        # GPT-5 family rejects non-default temperature values in some OpenAI endpoints.
        if model_name.startswith("gpt-5") or temperature is None:
            return {}
        return {"temperature": temperature}

    def _response_format_kwargs(self, response_schema: type[BaseModel], schema: dict) -> dict:
        if self.response_format != "json_schema":
            return {}
        return {
            "response_format": {
                "type": "json_schema",
                "json_schema": {"name": response_schema.__name__, "schema": schema},
            }
        }

    async def generate_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        response_schema: type[T],
        *,
        temperature: float | None = None,
    ) -> T:
        """
        Issue exactly one request and parse the reply into `response_schema`.

        The schema is always injected into the system prompt. With
        response_format "json_schema" it is also sent as a provider-side
        constraint; set LLM_RESPONSE_FORMAT=prompt for endpoints that reject it.
        The reply is parsed and validated locally either way.
        """
        schema = response_schema.model_json_schema()
        schema_json = json.dumps(schema)
        augmented_system_prompt = (
            f"{system_prompt.strip()}\n\n"
            "CRITICAL: You must respond in ONLY valid JSON format matching the following JSON Schema. "
            "Do not include markdown code blocks (```json) or any conversational text around the JSON.\n\n"
            f"EXPECTED SCHEMA:\n{schema_json}"
        )

        logger.info("Issuing structured request to model %s (temperature=%s)", self.model_name, temperature)
        try:
            response = await self.client.chat.completions.create(
                model=self.model_name,
                messages=[
                    {"role": "system", "content": augmented_system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                **self._chat_completion_kwargs(temperature=temperature),
                **self._response_format_kwargs(response_schema, schema),
            )
        except openai.APITimeoutError as exc:
            logger.warning("Model %s timed out after %ss", self.model_name, self.timeout)
            raise ModelTimeoutError(f"Model {self.model_name} timed out after {self.timeout:g}s") from exc
        except openai.OpenAIError as exc:
            logger.error("Error calling LLM provider %s: %s", self.model_name, exc)
            raise ModelInvocationError(f"Provider {self.model_name} request failed: {exc}") from exc

        if not getattr(response, "choices", None):
            logger.error("Received no choices from %s: %s", self.model_name, response)
            raise ModelInvocationError(f"Provider {self.model_name} returned no output. Try again or change model.")

        text_response = response.choices[0].message.content or ""
        result = parse_structured_reply(text_response, response_schema)
        logger.info("Received structured %s from %s", response_schema.__name__, self.model_name)
        return result
