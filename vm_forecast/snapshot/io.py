# vm_forecast/snapshot/io.py
from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple

from ..model.vm import Vm
from ..sim.replay import ReplayResult


def history_to_dict(vm: Vm) -> Dict[str, Any]:
    return {
        "vm_id": vm.vm_id,
        "total_pes": vm.total_pes,
        "fine_width": vm.fine.width,
        "slot_width": vm.coarse.width,
        "fine": {str(b): float(v) for b, v in vm.fine.items()},
        "coarse": {str(b): float(v) for b, v in vm.coarse.items()},
        "total_channel": {str(b): float(v) for b, v in vm.total_channel.items()},
        "product_channel": {str(b): float(v) for b, v in vm.product_channel.items()},
    }


def history_rows(vms: Iterable[Vm]) -> List[Tuple[int, str, float]]:
    """(bucket, vm_id, value) по fine-истории каждой VM."""
    rows = []
    for vm in vms:
        for bucket, value in vm.fine.items():
            rows.append((int(bucket), vm.vm_id, float(value)))
    return rows


def save_history_csv(vms: Iterable[Vm], path: Path, append: bool = False) -> int:
    rows = history_rows(vms)
    with open(path, "a" if append else "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f)
        if not append:
            writer.writerow(["bucket", "vm_id", "utilization"])
        writer.writerows(rows)
    return len(rows)


TASK_EVENT_HEADER = ["time", "task_id", "job_id", "event", "vm_id", "pes"]


def task_event_rows(result: ReplayResult) -> List[Tuple[float, int, str, str, str, int]]:
    """Журнал задач по времени: submit / admit / finish / reject."""
    ordered = sorted(enumerate(result.events), key=lambda p: (p[1].time, p[0]))
    return [(e.time, e.task_id, e.job_id, e.event, e.vm_id, e.pes) for _, e in ordered]


def save_task_events_csv(result: ReplayResult, path: Path, append: bool = False) -> int:
    rows = task_event_rows(result)
    with open(path, "a" if append else "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f)
        if not append:
            writer.writerow(TASK_EVENT_HEADER)
        writer.writerows(rows)
    return len(rows)


def replay_to_dict(result: ReplayResult) -> Dict[str, Any]:
    return {
        "policy": result.policy,
        "total_pes": result.total_pes,
        "submitted": result.submitted,
        "admitted": result.admitted,
        "rejected": result.rejected,
        "finished": result.finished,
        "ticks": [
            {
                "time": r.time,
                "vm_id": r.vm_id,
                "idle_pes": r.idle_pes,
                "busy_pes": r.busy_pes,
                "available_pes": r.available_pes,
            }
            for r in result.rows
        ],
        "events": [dict(zip(TASK_EVENT_HEADER, row)) for row in task_event_rows(result)],
        "histories": [history_to_dict(vm) for vm in result.vms],
    }


def save_replay_json(result: ReplayResult, path: Path) -> None:
    data = replay_to_dict(result)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, sort_keys=True)
