# vm_forecast/sim/view.py
from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Optional

from .policies import AvailabilityPolicy, BatchTablePolicy, CurrentPolicy, GratisAR2Policy, make_policy

if TYPE_CHECKING:
    from ..model.vm import Vm


class VmResourceView:
    """
    Фасад для аллокатора: по одному методу на политику, выбор - за
    вызывающим. Политики создаются лениво и живут вместе с VM, так что у
    каждой VM свои AR-коэффициенты.
    """

    def __init__(self, vm: "Vm"):
        self.vm = vm
        self._policies: Dict[str, AvailabilityPolicy] = {}

    def policy(self, name: str) -> AvailabilityPolicy:
        p = self._policies.get(name)
        if p is None:
            s = self.vm.settings
            p = make_policy(name, s.arma_coefficients, s.channel_coefficients)
            self._policies[name] = p
        return p

    def available_pes(self, time: float) -> int:
        return self.policy(CurrentPolicy.name).available_pes(self.vm, time)

    def available_pes_gratis(self, time: float) -> int:
        return self.policy(GratisAR2Policy.name).available_pes(self.vm, time)

    def available_pes_batch(self, time: float) -> int:
        return self.policy(BatchTablePolicy.name).available_pes(self.vm, time)

    def available_pes_arma(self, time: float, channel: Optional[str] = None) -> int:
        name = "arma" if channel is None else f"arma-{channel}"
        return self.policy(name).available_pes(self.vm, time)

    def available_pes_foar(self, time: float, channel: str = "total") -> int:
        return self.policy(f"foar-{channel}").available_pes(self.vm, time)

    def available_pes_by(self, policy: str, time: float) -> int:
        return self.policy(policy).available_pes(self.vm, time)

    def estimate(self, time: float) -> int:
        """По политике из настроек VM."""
        return self.available_pes_by(self.vm.settings.default_policy, time)
