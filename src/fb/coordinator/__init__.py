"""
Coordination package.

- DiscoveryPipeline: select subject, call the model, reconcile, finalize
- Publisher: caller-side guard, weekend gate, persistence and status
- schedule: time-of-day market selection and run interval helpers
"""

from fb.coordinator.pipeline import DiscoveryPipeline, PipelineConfig
from fb.coordinator.publisher import Publisher, PublishResult, status_for_error
from fb.coordinator.schedule import is_weekend, seconds_until_next_run, select_market

__all__ = [
    "DiscoveryPipeline",
    "PipelineConfig",
    "PublishResult",
    "Publisher",
    "is_weekend",
    "seconds_until_next_run",
    "select_market",
    "status_for_error",
]
