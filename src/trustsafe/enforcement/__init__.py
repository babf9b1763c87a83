"""Enforcement module: violations, status pipeline and suspensions."""

from trustsafe.enforcement.pipeline import (
    ActorPipeline,
    PipelineContext,
    PipelineResult,
)
from trustsafe.enforcement.violations import ViolationRecorder, ViolationOutcome
from trustsafe.enforcement.suspension import SuspensionManager

__all__ = [
    "ActorPipeline",
    "PipelineContext",
    "PipelineResult",
    "ViolationRecorder",
    "ViolationOutcome",
    "SuspensionManager",
]
