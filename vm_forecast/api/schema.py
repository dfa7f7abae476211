# vm_forecast/api/schema.py
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class VmCreateRequest(BaseModel):
    vm_id: str
    total_pes: int = Field(..., gt=0)
    policy: Optional[str] = None
    # таблица product прямо в запросе: fine-бакет -> доля
    product_usage: Optional[Dict[int, float]] = None
    # или путь/URL, откуда её загрузить
    product_source: Optional[str] = None


class VmModel(BaseModel):
    vm_id: str
    total_pes: int
    policy: str
    product_buckets: int
    history_buckets: int
    idle_pes: int
    busy_pes: int


class ObserveRequest(BaseModel):
    time: float = Field(..., ge=0)
    busy_pes: int = Field(..., ge=0)
    product_pes: int = Field(0, ge=0)
    idle_pes: Optional[int] = None


class AvailabilityResponse(BaseModel):
    vm_id: str
    time: float
    policy: str
    available_pes: int
    current_pes: int


class HistoryResponse(BaseModel):
    vm_id: str
    fine_width: int
    slot_width: int
    fine: Dict[int, float]
    coarse: Dict[int, float]
    total_channel: Dict[int, float]
    product_channel: Dict[int, float]


class ReplayTaskModel(BaseModel):
    time: float = Field(..., ge=0)
    cpu_req: float = Field(..., gt=0, le=1)
    duration: float = Field(..., gt=0)
    priority: int = 0
    job_id: str = ""
    is_product: bool = False


class ReplayRequest(BaseModel):
    tasks: List[ReplayTaskModel]
    total_pes: int = Field(..., gt=0)
    vm_count: int = Field(1, gt=0)
    policy: Optional[str] = None
    step: Optional[float] = Field(None, gt=0)
    product_usage: Optional[Dict[int, float]] = None


class TickModel(BaseModel):
    time: float
    vm_id: str
    idle_pes: int
    busy_pes: int
    available_pes: int


class ReplayResponse(BaseModel):
    policy: str
    submitted: int
    admitted: int
    rejected: int
    finished: int
    admission_rate: float
    ticks: List[TickModel]
