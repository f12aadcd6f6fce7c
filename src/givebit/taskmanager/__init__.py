"""Task manager — cancellable timers for heartbeat, backoff and polling.

Provides ``TaskScheduler``, which runs named periodic and one-shot jobs on
``asyncio`` tasks and releases them deterministically on shutdown.
"""

from __future__ import annotations

from givebit.taskmanager.manager import TaskScheduler

__all__ = ["TaskScheduler"]
