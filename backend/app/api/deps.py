from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from app.agent.artifacts import DiagramCandidate
from app.agent.orchestrator import DiagramOrchestrator
from app.agent.plantuml_renderer import PlantUMLRenderer
from app.core.cache import MemoryCache, NullCache
from app.core.config import settings


def build_cache(max_size: int, ttl: float) -> MemoryCache:
    if max_size <= 0:
        return NullCache()
    return MemoryCache(max_size=max_size, default_ttl=ttl)


@lru_cache
def get_diagram_cache() -> MemoryCache[DiagramCandidate]:
    return build_cache(settings.DIAGRAM_CACHE_SIZE, settings.DIAGRAM_CACHE_TTL_SECONDS)


@lru_cache
def get_render_cache() -> MemoryCache[str]:
    return build_cache(settings.RENDER_CACHE_SIZE, settings.RENDER_CACHE_TTL_SECONDS)


@lru_cache
def get_renderer() -> PlantUMLRenderer:
    return PlantUMLRenderer()


@lru_cache
def get_orchestrator() -> DiagramOrchestrator:
    return DiagramOrchestrator(renderer=get_renderer(), cache=get_diagram_cache())


OrchestratorDep = Annotated[DiagramOrchestrator, Depends(get_orchestrator)]
RendererDep = Annotated[PlantUMLRenderer, Depends(get_renderer)]
RenderCacheDep = Annotated[MemoryCache[str], Depends(get_render_cache)]
