import json
from collections.abc import Iterator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from app.agent.artifacts import DiagramCandidate, DiagramEditResult, DiagramKind, ValidationVerdict
from app.agent.errors import ConfigurationError, ModelInvocationError, RenderError, RetryExhaustedError
from app.agent.orchestrator import DiagramOrchestrator
from app.api.deps import get_orchestrator, get_render_cache, get_renderer
from app.core.cache import MemoryCache
from app.core.config import settings
from app.main import app

API = settings.API_V1_STR
VALID = "@startuml\n[Web] --> [API]\n@enduml"


@pytest.fixture
def orchestrator() -> MagicMock:
    mock = MagicMock()
    mock.generate = AsyncMock(
        return_value=DiagramCandidate(description="# Shop", plantuml=VALID, diagram_type=DiagramKind.COMPONENT)
    )
    mock.edit = AsyncMock(
        return_value=DiagramEditResult(plantuml=VALID, changes=["Renamed API"], diagram_type=DiagramKind.COMPONENT)
    )
    mock.llm.has_credentials = True
    mock.llm.model_name = "test-model"
    return mock


@pytest.fixture
def renderer() -> MagicMock:
    mock = MagicMock()
    mock.render = AsyncMock(return_value="<svg>ok</svg>")
    return mock


@pytest.fixture
def client(orchestrator: MagicMock, renderer: MagicMock) -> Iterator[TestClient]:
    render_cache: MemoryCache[str] = MemoryCache(max_size=10, default_ttl=60)
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_renderer] = lambda: renderer
    app.dependency_overrides[get_render_cache] = lambda: render_cache
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_health_check(client: TestClient):
    response = client.get(f"{API}/utils/health-check/")

    assert response.status_code == 200
    assert response.json() is True


def test_ready_reports_missing_credentials(client: TestClient, orchestrator: MagicMock):
    assert client.get(f"{API}/utils/ready/").status_code == 200

    orchestrator.llm.has_credentials = False

    assert client.get(f"{API}/utils/ready/").status_code == 503


def test_list_kinds_returns_template_per_kind(client: TestClient):
    response = client.get(f"{API}/diagrams/kinds")

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == len(DiagramKind)
    assert {item["diagram_type"] for item in body["data"]} == {kind.value for kind in DiagramKind}
    assert all(item["template"].startswith("@startuml") for item in body["data"])


def test_generate_returns_diagram(client: TestClient, orchestrator: MagicMock):
    response = client.post(
        f"{API}/diagrams/generate",
        json={"description": "  An online shop  ", "diagram_type": "component"},
    )

    assert response.status_code == 200
    assert response.json() == {"description": "# Shop", "plantuml": VALID, "diagram_type": "component"}
    orchestrator.generate.assert_awaited_once_with("An online shop", DiagramKind.COMPONENT)


def test_generate_defaults_kind_to_component(client: TestClient, orchestrator: MagicMock):
    response = client.post(f"{API}/diagrams/generate", json={"description": "An online shop"})

    assert response.status_code == 200
    orchestrator.generate.assert_awaited_once_with("An online shop", DiagramKind.COMPONENT)


@pytest.mark.parametrize(
    "payload, detail",
    [
        ({}, "Description is required and must be a string"),
        ({"description": 42}, "Description is required and must be a string"),
        ({"description": "   "}, "Description cannot be empty"),
        ({"description": "x" * 5001}, "Description is too long (maximum 5000 characters)"),
        ({"description": "A shop", "diagram_type": "mindmap"}, "Invalid diagram type"),
    ],
)
def test_generate_rejects_bad_input(client: TestClient, orchestrator: MagicMock, payload, detail):
    response = client.post(f"{API}/diagrams/generate", json=payload)

    assert response.status_code == 400
    assert response.json()["detail"] == detail
    orchestrator.generate.assert_not_awaited()


def test_generate_reports_missing_configuration(client: TestClient, orchestrator: MagicMock):
    orchestrator.generate.side_effect = ConfigurationError("Model API key is missing")

    response = client.post(f"{API}/diagrams/generate", json={"description": "An online shop"})

    assert response.status_code == 500
    assert "AI service not configured" in response.json()["detail"]


def test_generate_reports_exhausted_retries_with_details(client: TestClient, orchestrator: MagicMock):
    orchestrator.generate.side_effect = RetryExhaustedError(
        operation="generate",
        attempts=2,
        errors=["Unclosed '[' opened on line 2"],
        suggestions=["Add the matching ']'"],
        last_plantuml="@startuml\n[Web --> [API]\n@enduml",
    )

    response = client.post(f"{API}/diagrams/generate", json={"description": "An online shop"})

    assert response.status_code == 502
    detail = response.json()["detail"]
    assert "after multiple attempts" in detail["error"]
    assert "Failed to generate valid PlantUML after 2 attempts." in detail["details"]
    assert "[Web --> [API]" in detail["details"]


def test_generate_reports_provider_failure(client: TestClient, orchestrator: MagicMock):
    orchestrator.generate.side_effect = ModelInvocationError("Provider test-model request failed")

    response = client.post(f"{API}/diagrams/generate", json={"description": "An online shop"})

    assert response.status_code == 502
    assert response.json()["detail"].startswith("AI service error:")


def test_generate_stream_emits_progress_events(client: TestClient):
    llm = MagicMock()
    llm.has_credentials = True
    llm.generate_structured = AsyncMock(
        return_value=DiagramCandidate(description="# Shop", plantuml=VALID, diagram_type=DiagramKind.COMPONENT)
    )
    render_check = MagicMock()
    render_check.validate = AsyncMock(return_value=ValidationVerdict())
    real = DiagramOrchestrator(llm=llm, renderer=render_check, max_attempts=2, sleep=AsyncMock())
    app.dependency_overrides[get_orchestrator] = lambda: real

    response = client.post(f"{API}/diagrams/generate/stream", json={"description": "An online shop"})

    assert response.status_code == 200
    events = [
        json.loads(line[len("data:"):].strip())
        for line in response.text.splitlines()
        if line.startswith("data:")
    ]
    assert [event["status"] for event in events] == ["attempt", "completed"]
    assert events[-1]["artifact"]["plantuml"] == VALID


def test_edit_returns_changes(client: TestClient, orchestrator: MagicMock):
    response = client.post(
        f"{API}/diagrams/edit",
        json={"plantuml": VALID, "edit_instructions": "Rename API"},
    )

    assert response.status_code == 200
    assert response.json() == {"plantuml": VALID, "changes": ["Renamed API"], "diagram_type": "component"}
    orchestrator.edit.assert_awaited_once_with(VALID, "Rename API")


def test_edit_rejects_overlong_instructions(client: TestClient, orchestrator: MagicMock):
    response = client.post(
        f"{API}/diagrams/edit",
        json={"plantuml": VALID, "edit_instructions": "x" * 2001},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Edit instructions is too long (maximum 2000 characters)"
    orchestrator.edit.assert_not_awaited()


def test_edit_rejects_structurally_invalid_plantuml(client: TestClient, orchestrator: MagicMock):
    response = client.post(
        f"{API}/diagrams/edit",
        json={"plantuml": "[Web] --> [API]", "edit_instructions": "Add a cache"},
    )

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["error"] == "Invalid PlantUML code provided"
    assert "Missing @startuml marker" in detail["validation_errors"]
    orchestrator.edit.assert_not_awaited()


def test_render_caches_result(client: TestClient, renderer: MagicMock):
    first = client.post(f"{API}/diagrams/render", json={"plantuml": VALID})
    second = client.post(f"{API}/diagrams/render", json={"plantuml": VALID, "format": "svg"})

    assert first.status_code == 200
    assert first.json() == {"data": "<svg>ok</svg>", "format": "svg"}
    assert second.json() == first.json()
    renderer.render.assert_awaited_once_with(VALID, "svg")


def test_render_rejects_unknown_format(client: TestClient, renderer: MagicMock):
    response = client.post(f"{API}/diagrams/render", json={"plantuml": VALID, "format": "pdf"})

    assert response.status_code == 400
    renderer.render.assert_not_awaited()


@pytest.mark.parametrize(
    "reason, status_code",
    [("network", 503), ("timeout", 408), ("status", 400)],
)
def test_render_maps_failures_to_status_codes(client: TestClient, renderer: MagicMock, reason, status_code):
    renderer.render.side_effect = RenderError("render failed", reason=reason)

    response = client.post(f"{API}/diagrams/render", json={"plantuml": VALID, "format": "png"})

    assert response.status_code == status_code


@pytest.mark.parametrize("path", ["/diagrams/generate", "/diagrams/edit", "/diagrams/render"])
def test_unparseable_body_is_a_bad_request(client: TestClient, orchestrator: MagicMock, renderer: MagicMock, path):
    response = client.post(f"{API}{path}", content=b"not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail and all({"loc", "msg", "type"} <= set(error) for error in detail)
    orchestrator.generate.assert_not_awaited()
    orchestrator.edit.assert_not_awaited()
    renderer.render.assert_not_awaited()


@pytest.mark.parametrize("path", ["/diagrams/generate", "/diagrams/edit", "/diagrams/render"])
def test_missing_body_is_a_bad_request(client: TestClient, orchestrator: MagicMock, renderer: MagicMock, path):
    response = client.post(f"{API}{path}")

    assert response.status_code == 400
    assert response.json()["detail"][0]["loc"][0] == "body"
    orchestrator.generate.assert_not_awaited()
    orchestrator.edit.assert_not_awaited()
    renderer.render.assert_not_awaited()
