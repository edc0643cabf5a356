"""autosaver: a write-coalescing persistence scheduler.

Feed every new state value to :meth:`Scheduler.on_change`; the scheduler
decides when to call your persist function so the latest state becomes
durable with as few calls as possible, never two at once.

Usage
-----
    async def main() -> None:
        scheduler = autosaver.create(doc, save_doc, SchedulerConfig(idle_ms=1200))
        scheduler.on_change(edited_doc)
        ...
        scheduler.teardown()
"""

from __future__ import annotations

from autosaver.core.contracts.config import SchedulerConfig
from autosaver.core.contracts.status import SaveDecision, SaveStatus
from autosaver.core.runtime import SimulatedRuntime, asyncio_runtime, threaded_runtime
from autosaver.core.scheduler import Scheduler, create

__all__ = [
    "SaveDecision",
    "SaveStatus",
    "Scheduler",
    "SchedulerConfig",
    "SimulatedRuntime",
    "__version__",
    "asyncio_runtime",
    "create",
    "threaded_runtime",
]
__version__ = "0.1.0"
