"""
AI Agents for App Generation
"""
from .pipeline import AppGenerationPipeline, PipelineError, build_stores

__all__ = [
    "AppGenerationPipeline",
    "PipelineError",
    "build_stores",
]
