# vm_forecast/api/server.py
from __future__ import annotations

import dataclasses
import logging
import math
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from ..config import POLICY_NAMES, get_settings
from ..model.product_usage import ProductUsageLoadError, ProductUsageTable
from ..model.vm import Vm
from ..sim.replay import run_replay
from ..sim.scheduler import ReportedScheduler, Task
from ..snapshot.io import history_to_dict
from ..snapshot.product_source import load_product_usage
from .schema import (
    AvailabilityResponse, HistoryResponse, ObserveRequest, ReplayRequest, ReplayResponse,
    TickModel, VmCreateRequest, VmModel,
)

app = FastAPI(title="vm-forecast")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

log = logging.getLogger("uvicorn")


# --- Registry ---

class VmRegistry:
    def __init__(self):
        self.vms: Dict[str, Vm] = {}

    def add(self, vm: Vm) -> None:
        if vm.vm_id in self.vms:
            raise ValueError(f"VM {vm.vm_id} already exists")
        self.vms[vm.vm_id] = vm

    def get(self, vm_id: str) -> Vm:
        vm = self.vms.get(vm_id)
        if vm is None:
            raise KeyError(vm_id)
        return vm

    def clear(self) -> None:
        self.vms.clear()


registry = VmRegistry()


# --- Helpers ---

def _check_policy(policy: Optional[str]) -> None:
    if policy is not None and policy not in POLICY_NAMES:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown policy {policy!r}; expected one of {', '.join(POLICY_NAMES)}",
        )


def _get_vm(vm_id: str) -> Vm:
    try:
        return registry.get(vm_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"VM {vm_id} not found")


def _to_vm_model(vm: Vm) -> VmModel:
    return VmModel(
        vm_id=vm.vm_id,
        total_pes=vm.total_pes,
        policy=vm.settings.default_policy,
        product_buckets=len(vm.product_usage),
        history_buckets=len(vm.coarse),
        idle_pes=vm.scheduler.idle_pes(0.0),
        busy_pes=vm.scheduler.busy_pes(0.0),
    )


def _product_table(usage: Optional[Dict[int, float]], source: Optional[str], width: int) -> Optional[ProductUsageTable]:
    if usage is not None:
        try:
            return ProductUsageTable(usage, width=width)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    if source:
        try:
            return load_product_usage(source, width=width, timeout=get_settings().product_timeout_s)
        except ProductUsageLoadError as e:
            raise HTTPException(status_code=502, detail=str(e))
    return None


# --- Endpoints ---

@app.get("/vms", response_model=List[VmModel])
def list_vms():
    return [_to_vm_model(registry.vms[k]) for k in sorted(registry.vms)]


@app.post("/vms", response_model=VmModel, status_code=201)
def create_vm(req: VmCreateRequest) -> VmModel:
    _check_policy(req.policy)
    if req.vm_id in registry.vms:
        raise HTTPException(status_code=409, detail=f"VM {req.vm_id} already exists")
    settings = get_settings()
    if req.policy:
        settings = dataclasses.replace(settings, default_policy=req.policy)
    table = _product_table(req.product_usage, req.product_source, settings.fine_width)

    try:
        vm = Vm(req.vm_id, req.total_pes, ReportedScheduler(req.total_pes), table, settings)
        registry.add(vm)
    except ProductUsageLoadError as e:
        log.error(f"Failed to load product usage for {req.vm_id}: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    log.info(f"Created VM {vm.vm_id} ({vm.total_pes} PEs, policy={settings.default_policy})")
    return _to_vm_model(vm)


@app.get("/vms/{vm_id}", response_model=VmModel)
def get_vm(vm_id: str) -> VmModel:
    return _to_vm_model(_get_vm(vm_id))


@app.post("/vms/{vm_id}/observe", response_model=VmModel)
def observe(vm_id: str, req: ObserveRequest) -> VmModel:
    vm = _get_vm(vm_id)
    try:
        vm.scheduler.report(req.busy_pes, req.product_pes, idle_pes=req.idle_pes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    vm.update_processing(req.time)
    return _to_vm_model(vm)


@app.get("/vms/{vm_id}/available", response_model=AvailabilityResponse)
def available(vm_id: str, time: float, policy: Optional[str] = None) -> AvailabilityResponse:
    vm = _get_vm(vm_id)
    _check_policy(policy)
    if time < 0 or not math.isfinite(time):
        raise HTTPException(status_code=400, detail=f"Bad time {time}")
    name = policy or vm.settings.default_policy
    return AvailabilityResponse(
        vm_id=vm.vm_id,
        time=time,
        policy=name,
        available_pes=vm.resources.available_pes_by(name, time),
        current_pes=vm.resources.available_pes(time),
    )


@app.get("/vms/{vm_id}/history", response_model=HistoryResponse)
def history(vm_id: str) -> HistoryResponse:
    data = history_to_dict(_get_vm(vm_id))
    data.pop("total_pes")
    return HistoryResponse(**data)


@app.post("/replay", response_model=ReplayResponse)
def replay(req: ReplayRequest) -> ReplayResponse:
    _check_policy(req.policy)
    settings = get_settings()
    table = _product_table(req.product_usage, None, settings.fine_width)
    tasks = [
        Task(
            task_id=i,
            submit_time=t.time,
            pes=max(1, math.ceil(t.cpu_req * req.total_pes)),
            duration=t.duration,
            priority=t.priority,
            job_id=t.job_id,
            is_product=t.is_product,
        )
        for i, t in enumerate(req.tasks)
    ]
    try:
        result = run_replay(
            tasks,
            vm_count=req.vm_count,
            total_pes=req.total_pes,
            policy=req.policy,
            step=req.step,
            settings=settings,
            product_usage=table or ProductUsageTable.empty(settings.fine_width),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ReplayResponse(
        policy=result.policy,
        submitted=result.submitted,
        admitted=result.admitted,
        rejected=result.rejected,
        finished=result.finished,
        admission_rate=result.admission_rate,
        ticks=[
            TickModel(
                time=r.time, vm_id=r.vm_id, idle_pes=r.idle_pes,
                busy_pes=r.busy_pes, available_pes=r.available_pes,
            )
            for r in result.rows
        ],
    )
