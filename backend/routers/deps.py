"""
Shared FastAPI dependencies

The stores and registry are built once per process. Tests replace them
through app.dependency_overrides.
"""
from functools import lru_cache
from typing import Callable, Optional

from agents.pipeline import AppGenerationPipeline, Stores, build_stores

PipelineFactory = Callable[[Optional[Callable[[str], None]]], AppGenerationPipeline]


@lru_cache(maxsize=1)
def _stores() -> Stores:
    return build_stores()


def get_stores() -> Stores:
    return _stores()


def get_pipeline_factory() -> PipelineFactory:
    stores = get_stores()

    def factory(progress_callback: Optional[Callable[[str], None]] = None) -> AppGenerationPipeline:
        return AppGenerationPipeline(stores=stores, progress_callback=progress_callback)

    return factory


__all__ = ["get_stores", "get_pipeline_factory", "PipelineFactory"]
