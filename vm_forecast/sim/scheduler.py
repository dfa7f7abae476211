# vm_forecast/sim/scheduler.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

log = logging.getLogger(__name__)


class SchedulerView(Protocol):
    """Что оценщику нужно от планировщика задач VM."""

    total_pes: int

    def idle_pes(self, time: float) -> int: ...

    def busy_pes(self, time: float) -> int: ...

    def product_pes(self, time: float) -> int: ...


class ReportedScheduler:
    """
    Планировщик, состояние которого присылает внешний аллокатор
    (например, через API). Хранит последние присланные значения.
    """

    def __init__(self, total_pes: int):
        if total_pes <= 0:
            raise ValueError(f"total_pes must be positive, got {total_pes}")
        self.total_pes = total_pes
        self._busy = 0
        self._product = 0

    def report(self, busy_pes: int, product_pes: int = 0, idle_pes: Optional[int] = None) -> None:
        if busy_pes < 0 or product_pes < 0:
            raise ValueError("PE counts must be non-negative")
        if busy_pes > self.total_pes:
            raise ValueError(f"busy_pes={busy_pes} exceeds total_pes={self.total_pes}")
        if idle_pes is not None and idle_pes != self.total_pes - busy_pes:
            raise ValueError(
                f"idle_pes={idle_pes} inconsistent with busy_pes={busy_pes} of {self.total_pes}"
            )
        self._busy = busy_pes
        self._product = min(product_pes, busy_pes)

    def idle_pes(self, time: float) -> int:
        return self.total_pes - self._busy

    def busy_pes(self, time: float) -> int:
        return self._busy

    def product_pes(self, time: float) -> int:
        return self._product


@dataclass
class Task:
    task_id: int
    submit_time: float
    pes: int
    duration: float
    priority: int = 0
    job_id: str = ""
    is_product: bool = False


@dataclass
class _Running:
    task: Task
    finish_time: float


class SpaceSharedScheduler:
    """
    Space-shared: каждая задача держит свои PE целиком до завершения.
    """

    def __init__(self, total_pes: int):
        if total_pes <= 0:
            raise ValueError(f"total_pes must be positive, got {total_pes}")
        self.total_pes = total_pes
        self._running: Dict[int, _Running] = {}
        self.finished: List[Task] = []

    def _used(self, product_only: bool = False) -> int:
        return sum(
            r.task.pes for r in self._running.values()
            if not product_only or r.task.is_product
        )

    def idle_pes(self, time: float) -> int:
        return self.total_pes - self._used()

    def busy_pes(self, time: float) -> int:
        return self._used()

    def product_pes(self, time: float) -> int:
        return self._used(product_only=True)

    @property
    def running(self) -> List[Task]:
        return [r.task for r in self._running.values()]

    def can_fit(self, task: Task) -> bool:
        return task.pes <= self.total_pes - self._used()

    def submit(self, task: Task, time: float) -> None:
        if not self.can_fit(task):
            raise ValueError(
                f"task {task.task_id} needs {task.pes} PEs, only {self.total_pes - self._used()} idle"
            )
        self._running[task.task_id] = _Running(task=task, finish_time=time + task.duration)

    def complete_until(self, time: float) -> List[Task]:
        """Снимает задачи, завершившиеся к моменту time."""
        done = [tid for tid, r in self._running.items() if r.finish_time <= time]
        out = []
        for tid in done:
            out.append(self._running.pop(tid).task)
        self.finished.extend(out)
        if out:
            log.debug("completed %d task(s) by t=%s", len(out), time)
        return out

    def next_finish_time(self) -> Optional[float]:
        if not self._running:
            return None
        return min(r.finish_time for r in self._running.values())
