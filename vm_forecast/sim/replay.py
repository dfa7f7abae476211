# vm_forecast/sim/replay.py
from __future__ import annotations

import csv
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..config import Settings, get_settings
from ..model.product_usage import ProductUsageTable
from ..model.vm import Vm
from .scheduler import SpaceSharedScheduler, Task

log = logging.getLogger(__name__)

_TRUE = {"1", "true", "yes", "y"}


@dataclass
class TickRow:
    time: float
    vm_id: str
    idle_pes: int
    busy_pes: int
    available_pes: int


@dataclass
class TaskEvent:
    """Событие задачи: submit / admit / finish / reject."""

    time: float
    task_id: int
    job_id: str
    event: str
    vm_id: str = ""
    pes: int = 0


@dataclass
class ReplayResult:
    policy: str
    total_pes: int
    submitted: int
    admitted: int
    rejected: int
    finished: int
    rows: List[TickRow] = field(default_factory=list)
    vms: List[Vm] = field(default_factory=list)
    events: List[TaskEvent] = field(default_factory=list)

    @property
    def admission_rate(self) -> float:
        return self.admitted / self.submitted if self.submitted else 0.0


def load_trace_csv(
    path: Union[str, Path],
    total_pes: int,
    max_priority: Optional[int] = None,
) -> List[Task]:
    """
    Трасса задач из CSV.

    Колонки: time, cpu_req (доля PE VM), duration, priority, job_id,
    опционально is_product. cpu_req переводится в PE через ceil.
    max_priority: берём только задачи с priority < max_priority.
    """
    tasks: List[Task] = []
    p = Path(path)
    with open(p, "r", encoding="utf-8", newline="") as f:
        for i, row in enumerate(csv.DictReader(f)):
            try:
                priority = int(row.get("priority") or 0)
                if max_priority is not None and priority >= max_priority:
                    continue
                cpu_req = float(row["cpu_req"])
                tasks.append(Task(
                    task_id=len(tasks),
                    submit_time=float(row["time"]),
                    pes=max(1, math.ceil(cpu_req * total_pes)),
                    duration=float(row["duration"]),
                    priority=priority,
                    job_id=row.get("job_id") or "",
                    is_product=str(row.get("is_product") or "").strip().lower() in _TRUE,
                ))
            except (KeyError, ValueError) as e:
                raise ValueError(f"{p}: bad trace row {i}: {e}") from e
    log.info("Loaded %d task(s) from %s", len(tasks), p)
    return tasks


def run_replay(
    tasks: List[Task],
    vm_count: int,
    total_pes: int,
    policy: Optional[str] = None,
    step: Optional[float] = None,
    until: Optional[float] = None,
    settings: Optional[Settings] = None,
    product_usage: Optional[ProductUsageTable] = None,
) -> ReplayResult:
    """
    Прогон трассы по VM с фиксированным шагом часов.

    На каждом тике:
    1. снимаем завершившиеся задачи;
    2. product-задачи ставим, если физически влезают;
       остальные - на первую VM, где политика даёт достаточно PE;
    3. update_processing на каждой VM.
    Не поставленные к концу прогона задачи считаются отклонёнными.
    """
    if vm_count <= 0:
        raise ValueError(f"vm_count must be positive, got {vm_count}")
    settings = settings or get_settings()
    policy = policy or settings.default_policy
    step = step or settings.fine_width
    if step <= 0:
        raise ValueError(f"step must be positive, got {step}")

    vms = [
        Vm(f"vm-{i}", total_pes, SpaceSharedScheduler(total_pes), product_usage, settings)
        for i in range(vm_count)
    ]
    # проверяем имя политики до прогона
    vms[0].resources.policy(policy)

    pending = sorted(tasks, key=lambda t: (t.submit_time, t.task_id))
    if until is None:
        last = max((t.submit_time + t.duration for t in pending), default=0.0)
        until = last + step

    waiting: List[Task] = []
    rows: List[TickRow] = []
    events: List[TaskEvent] = []
    started: Dict[int, float] = {}

    def emit(time: float, task: Task, event: str, vm_id: str = "") -> None:
        events.append(TaskEvent(time, task.task_id, task.job_id, event, vm_id, task.pes))

    admitted = 0
    idx = 0
    now = 0.0
    last_tick = 0.0

    while now <= until:
        for vm in vms:
            for task in vm.scheduler.complete_until(now):
                emit(started[task.task_id] + task.duration, task, "finish", vm.vm_id)

        while idx < len(pending) and pending[idx].submit_time <= now:
            emit(pending[idx].submit_time, pending[idx], "submit")
            waiting.append(pending[idx])
            idx += 1

        still_waiting: List[Task] = []
        for task in waiting:
            placed = False
            for vm in vms:
                if not vm.scheduler.can_fit(task):
                    continue
                if not task.is_product and vm.resources.available_pes_by(policy, now) < task.pes:
                    continue
                vm.scheduler.submit(task, now)
                started[task.task_id] = now
                emit(now, task, "admit", vm.vm_id)
                placed = True
                admitted += 1
                break
            if not placed:
                still_waiting.append(task)
        waiting = still_waiting

        for vm in vms:
            vm.update_processing(now)
            rows.append(TickRow(
                time=now,
                vm_id=vm.vm_id,
                idle_pes=vm.scheduler.idle_pes(now),
                busy_pes=vm.scheduler.busy_pes(now),
                available_pes=vm.resources.available_pes_by(policy, now),
            ))
        last_tick = now
        now += step

    # не поставленные (и не дошедшие до очереди) задачи
    for task in waiting + pending[idx:]:
        emit(last_tick, task, "reject")

    finished = sum(len(vm.scheduler.finished) for vm in vms)
    result = ReplayResult(
        policy=policy,
        total_pes=total_pes,
        submitted=len(tasks),
        admitted=admitted,
        rejected=len(tasks) - admitted,
        finished=finished,
        rows=rows,
        vms=vms,
        events=events,
    )
    log.info(
        "Replay policy=%s: %d submitted, %d admitted, %d rejected, %d finished",
        policy, result.submitted, admitted, result.rejected, finished,
    )
    return result


def summarize(result: ReplayResult) -> Dict[str, float]:
    peak: Dict[str, float] = {}
    for vm in result.vms:
        peak[vm.vm_id] = max(float(v) for _, v in vm.fine.items())
    return {
        "admission_rate": result.admission_rate,
        "mean_peak_utilization": sum(peak.values()) / len(peak) if peak else 0.0,
    }
