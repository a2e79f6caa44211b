from fastapi import APIRouter, HTTPException

from app.api.deps import OrchestratorDep
from app.models import Message

router = APIRouter(prefix="/utils", tags=["utils"])


@router.get("/health-check/")
async def health_check() -> bool:
    return True


@router.get("/ready/", response_model=Message)
async def readiness(orchestrator: OrchestratorDep) -> Message:
    if not orchestrator.llm.has_credentials:
        raise HTTPException(status_code=503, detail="AI service not configured")
    return Message(message=f"Ready: generation model {orchestrator.llm.model_name}")
