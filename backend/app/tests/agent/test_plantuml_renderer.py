import base64
import unittest
import zlib

import httpx

from app.agent.errors import RenderError
from app.agent.plantuml_renderer import PlantUMLRenderer, encode_plantuml

DIAGRAM = "@startuml\n[A] --> [B]\n@enduml"

_PLANTUML_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz-_"
_STANDARD_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"


def _decode(encoded: str) -> str:
    standard = encoded.translate(str.maketrans(_PLANTUML_ALPHABET, _STANDARD_ALPHABET))
    standard += "=" * (-len(standard) % 4)
    return zlib.decompress(base64.b64decode(standard), -15).decode("utf-8")


def _renderer(handler) -> PlantUMLRenderer:
    return PlantUMLRenderer(
        "https://plantuml.test/plantuml/",
        timeout=5,
        validation_format="svg",
        transport=httpx.MockTransport(handler),
    )


class EncodePlantUMLTests(unittest.TestCase):
    def test_encoding_uses_url_safe_plantuml_alphabet(self):
        encoded = encode_plantuml(DIAGRAM)

        self.assertTrue(encoded)
        self.assertTrue(set(encoded) <= set(_PLANTUML_ALPHABET))

    def test_encoding_is_raw_deflate(self):
        text = '@startuml\nparticipant "Ünïcode" as U\nU -> U: héllo\n@enduml'

        self.assertEqual(_decode(encode_plantuml(text)), text)

    def test_build_url_strips_trailing_slash_and_includes_format(self):
        renderer = PlantUMLRenderer("https://plantuml.test/plantuml/")

        url = renderer.build_url(DIAGRAM, "png")

        self.assertEqual(url, f"https://plantuml.test/plantuml/png/{encode_plantuml(DIAGRAM)}")


class PlantUMLRendererTests(unittest.IsolatedAsyncioTestCase):
    async def test_render_svg_returns_markup(self):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, text="<svg>ok</svg>")

        data = await _renderer(handler).render(DIAGRAM, "svg")

        self.assertEqual(data, "<svg>ok</svg>")
        self.assertTrue(seen[0].startswith("https://plantuml.test/plantuml/svg/"))

    async def test_render_png_returns_base64(self):
        payload = b"\x89PNG\r\n\x1a\nfake"

        data = await _renderer(lambda request: httpx.Response(200, content=payload)).render(DIAGRAM, "png")

        self.assertEqual(base64.b64decode(data), payload)

    async def test_error_status_includes_server_diagnostics(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                400,
                headers={
                    "X-PlantUML-Diagram-Error": "Syntax Error?",
                    "X-PlantUML-Diagram-Error-Line": "2",
                },
            )

        with self.assertRaises(RenderError) as ctx:
            await _renderer(handler).render(DIAGRAM)

        self.assertEqual(ctx.exception.reason, "status")
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertIn("Failed to render diagram: 400", str(ctx.exception))
        self.assertIn("Syntax Error? on line 2", str(ctx.exception))

    async def test_timeout_maps_to_timeout_reason(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with self.assertRaises(RenderError) as ctx:
            await _renderer(handler).render(DIAGRAM)

        self.assertEqual(ctx.exception.reason, "timeout")

    async def test_connection_failure_maps_to_network_reason(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with self.assertRaises(RenderError) as ctx:
            await _renderer(handler).render(DIAGRAM)

        self.assertEqual(ctx.exception.reason, "network")

    async def test_validate_passes_when_server_renders(self):
        verdict = await _renderer(lambda request: httpx.Response(200, text="<svg/>")).validate(DIAGRAM)

        self.assertTrue(verdict.valid)
        self.assertEqual(verdict.errors, [])

    async def test_validate_turns_rejection_into_verdict(self):
        verdict = await _renderer(lambda request: httpx.Response(400)).validate(DIAGRAM)

        self.assertFalse(verdict.valid)
        self.assertEqual(len(verdict.errors), 1)
        self.assertIn("PlantUML server rejected the diagram", verdict.errors[0])
        self.assertTrue(verdict.suggestions)

    async def test_validate_turns_timeout_into_verdict(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        verdict = await _renderer(handler).validate(DIAGRAM)

        self.assertFalse(verdict.valid)
        self.assertIn("timed out", verdict.errors[0])
