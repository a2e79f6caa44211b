import base64
import logging
import zlib
from typing import Literal

import httpx

from app.agent.artifacts import ValidationVerdict
from app.agent.errors import PlantUMLEncodeError, RenderError
from app.core.config import settings

logger = logging.getLogger(__name__)

RenderFormat = Literal["svg", "png"]

# PlantUML's URL alphabet is base64 with a different symbol order.
_PLANTUML_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz-_"
_STANDARD_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
_TO_PLANTUML = bytes.maketrans(_STANDARD_ALPHABET.encode("ascii"), _PLANTUML_ALPHABET.encode("ascii"))


def encode_plantuml(text: str) -> str:
    """Deflate the diagram text and encode it with PlantUML's URL alphabet."""
    try:
        # Raw deflate: drop the zlib header (2 bytes) and adler32 trailer (4 bytes).
        compressed = zlib.compress(text.encode("utf-8"), 9)[2:-4]
    except (UnicodeEncodeError, zlib.error) as exc:
        raise PlantUMLEncodeError("Failed to encode PlantUML text") from exc
    encoded = base64.b64encode(compressed).translate(_TO_PLANTUML)
    return encoded.decode("ascii").rstrip("=")


def _classify_render_failure(message: str) -> tuple[str, list[str]]:
    lowered = message.lower()
    if "400" in lowered or "bad request" in lowered:
        return (
            f"PlantUML server rejected the diagram: {message}",
            [
                "Check every element declaration and arrow against the syntax rules for this diagram type",
                "Remove unsupported keywords, styling directives and special characters from names",
            ],
        )
    if "syntax" in lowered:
        return (
            f"PlantUML syntax error reported by the renderer: {message}",
            [
                "Fix the line reported by the renderer and re-check bracket, brace and quote balance",
                "Use only the basic syntax shown in the example for this diagram type",
            ],
        )
    if "timeout" in lowered or "timed out" in lowered:
        return (
            f"PlantUML rendering timed out: {message}",
            [
                "Simplify the diagram: fewer elements, shorter labels and fewer nested groups",
            ],
        )
    return (
        f"PlantUML rendering failed: {message}",
        ["Review the whole diagram for PlantUML syntax errors and simplify unusual constructs"],
    )


class PlantUMLRenderer:
    """Client for the PlantUML web rendering service."""

    def __init__(
        self,
        server_url: str | None = None,
        *,
        timeout: float | None = None,
        validation_format: RenderFormat | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.server_url = (server_url or settings.PLANTUML_SERVER_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.RENDER_TIMEOUT_SECONDS
        self.validation_format: RenderFormat = validation_format or settings.RENDER_VALIDATION_FORMAT
        self._transport = transport

    def build_url(self, text: str, fmt: RenderFormat = "svg") -> str:
        return f"{self.server_url}/{fmt}/{encode_plantuml(text)}"

    async def _fetch(self, text: str, fmt: RenderFormat) -> httpx.Response:
        url = self.build_url(text, fmt)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url)
        except httpx.TimeoutException as exc:
            raise RenderError(
                f"PlantUML server timeout after {self.timeout:g}s",
                reason="timeout",
            ) from exc
        except httpx.HTTPError as exc:
            raise RenderError(
                f"Failed to reach PlantUML server: {exc}",
                reason="network",
            ) from exc

        if response.is_error:
            detail = response.headers.get("X-PlantUML-Diagram-Error")
            line = response.headers.get("X-PlantUML-Diagram-Error-Line")
            message = f"Failed to render diagram: {response.status_code}"
            if detail:
                message += f" ({detail}{f' on line {line}' if line else ''})"
            raise RenderError(message, reason="status", status_code=response.status_code)
        return response

    async def render(self, text: str, fmt: RenderFormat = "svg") -> str:
        """Return SVG markup, or base64-encoded PNG bytes."""
        response = await self._fetch(text, fmt)
        if fmt == "svg":
            return response.text
        return base64.b64encode(response.content).decode("ascii")

    async def validate(self, text: str) -> ValidationVerdict:
        """Second validation gate: the diagram is valid only if the server renders it."""
        try:
            await self._fetch(text, self.validation_format)
        except (RenderError, PlantUMLEncodeError) as exc:
            error, suggestions = _classify_render_failure(str(exc))
            logger.warning("Render validation failed: %s", exc)
            return ValidationVerdict.from_findings([error], suggestions)
        return ValidationVerdict()
