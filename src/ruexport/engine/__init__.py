"""Export engine: pacing pager and the scalar / ID pipelines."""

from ruexport.engine.clock import DEFAULT_CLOCK, Clock, MockClock, SystemClock
from ruexport.engine.pager import CostAwarePager
from ruexport.engine.reconcile import IdReconcilingExportPipeline
from ruexport.engine.scalar import ScalarExportPipeline

__all__ = [
    "DEFAULT_CLOCK",
    "Clock",
    "CostAwarePager",
    "IdReconcilingExportPipeline",
    "MockClock",
    "ScalarExportPipeline",
    "SystemClock",
]
