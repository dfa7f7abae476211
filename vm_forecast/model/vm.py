# vm_forecast/model/vm.py
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from ..config import Settings, get_settings
from ..sim.fixed_point import divide
from ..sim.policies import current_available
from ..sim.scheduler import SchedulerView
from ..sim.view import VmResourceView
from ..snapshot.product_source import load_product_usage
from ..types import VmId
from .history import UtilizationHistory
from .product_usage import ProductUsageTable

log = logging.getLogger(__name__)


class Vm:
    """
    VM с историей загрузки и таблицей product-нагрузки.

    Истории:
      fine            - загрузка VM по fine-бакетам (экспорт)
      coarse          - та же загрузка по SLOT-бакетам (AR-прогноз)
      total_channel   - busy PE / total по fine-бакетам (FOAR total)
      product_channel - product PE / total по fine-бакетам (FOAR product)

    Всё состояние принадлежит этой VM и ни с кем не делится.
    """

    def __init__(
        self,
        vm_id: str,
        total_pes: int,
        scheduler: SchedulerView,
        product_usage: Optional[ProductUsageTable] = None,
        settings: Optional[Settings] = None,
    ):
        if total_pes <= 0:
            raise ValueError(f"total_pes must be positive, got {total_pes}")
        self.vm_id = VmId(vm_id)
        self.total_pes = total_pes
        self.scheduler = scheduler
        self.settings = settings or get_settings()

        if product_usage is None:
            # ошибка загрузки не перехватывается: VM без полной таблицы не создаём
            product_usage = load_product_usage(
                self.settings.product_source,
                width=self.settings.fine_width,
                timeout=self.settings.product_timeout_s,
            )
        if product_usage.width != self.settings.fine_width:
            raise ValueError(
                f"product usage width {product_usage.width} != fine width {self.settings.fine_width}"
            )
        self.product_usage = product_usage

        self.fine = UtilizationHistory(self.settings.fine_width)
        self.coarse = UtilizationHistory(self.settings.slot_width)
        self.total_channel = UtilizationHistory(self.settings.fine_width)
        self.product_channel = UtilizationHistory(self.settings.fine_width)

        self._resources: Optional[VmResourceView] = None
        log.debug("vm %s created: %d PEs, %d product buckets", vm_id, total_pes, len(product_usage))

    @property
    def slot_ratio(self) -> int:
        return self.settings.slot_ratio

    @property
    def resources(self) -> VmResourceView:
        if self._resources is None:
            self._resources = VmResourceView(self)
        return self._resources

    def _fraction(self, pes: int) -> Decimal:
        return divide(Decimal(pes), Decimal(self.total_pes))

    def update_processing(self, time: float) -> None:
        """Шаг "update VM processing": фиксируем загрузку за текущий тик."""
        used = self.total_pes - current_available(self, time)
        self.fine.record(time, self._fraction(used))
        self.coarse.record(time, self._fraction(used))
        self.total_channel.record(time, self._fraction(self.scheduler.busy_pes(time)))
        self.product_channel.record(time, self._fraction(self.scheduler.product_pes(time)))
