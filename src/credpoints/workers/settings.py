"""arq worker settings module.

Import path for arq CLI: arq credpoints.workers.settings.WorkerSettings
"""

from __future__ import annotations

from credpoints.workers.repair_worker import RepairWorkerSettings as WorkerSettings

__all__ = ["WorkerSettings"]
