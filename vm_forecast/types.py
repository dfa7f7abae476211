# vm_forecast/types.py
from __future__ import annotations

from typing import NewType


# Идентификаторы
VmId = NewType("VmId", str)

# Время / бакеты
Bucket = NewType("Bucket", int)   # floor(sim_time / width)

FINE_WIDTH = 300
CHANNELS = ("total", "product")
