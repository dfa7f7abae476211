# vm_forecast/sim/policies.py
from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Protocol, Tuple

from ..types import CHANNELS
from .fixed_point import ONE, ZERO, Number, busy_pes, to_decimal
from .predictor import ARPredictor, fixed_forecast

if TYPE_CHECKING:
    from ..model.vm import Vm

log = logging.getLogger(__name__)

ARMA_COEFFICIENTS: Tuple[Number, Number] = (Decimal("0.667"), Decimal("0.318"))
CHANNEL_COEFFICIENTS: Tuple[Number, Number] = (Decimal("1.0"), Decimal("1.0"))


def _bounded(pes: int, total: int) -> int:
    return max(0, min(pes, total))


def _from_forecast(forecast: Decimal, total: int) -> int:
    """Свободные PE по прогнозу загрузки: прогноз >= 1 -> 0."""
    if forecast >= ONE:
        return 0
    return _bounded(total - busy_pes(forecast, total), total)


def current_available(vm: "Vm", time: float) -> int:
    """
    Свободные PE сейчас: idle из планировщика минус пик product-нагрузки
    на ближайший SLOT (fine-бакеты [k, k + SLOT/fine)).
    """
    idle = vm.scheduler.idle_pes(time)
    key = vm.product_usage.bucket_of(time)
    peak = vm.product_usage.window_max(key, vm.slot_ratio)
    return _bounded(idle - busy_pes(peak, vm.total_pes), vm.total_pes)


def channel_max(vm: "Vm", channel: str, bucket: int) -> Decimal:
    """
    Оконный максимум канала по SLOT/fine fine-бакетам:
    total смотрит назад (bucket - span, bucket], product - вперёд [bucket, bucket + span).
    """
    span = vm.slot_ratio
    if channel == "total":
        return vm.total_channel.window_max(bucket, span, backward=True)
    if channel == "product":
        return vm.product_channel.window_max(bucket, span)
    raise ValueError(f"unknown channel {channel!r}, expected 'total' or 'product'")


def channel_series(vm: "Vm", channel: str, key: int) -> Tuple[List[Decimal], int]:
    """
    Серия канала с шагом в один SLOT, от самого раннего бакета до key.

    Возвращает (значения, число хвостовых нулей): за концом записанной
    истории оконный максимум всегда 0, такие точки не разворачиваются.
    """
    span = vm.slot_ratio
    keys = range(key % span, key + 1, span)
    history = vm.total_channel if channel == "total" else vm.product_channel
    limit = min(key, history.last_bucket + span - 1)
    head = range(key % span, limit + 1, span)
    return [channel_max(vm, channel, b) for b in head], len(keys) - len(head)


class AvailabilityPolicy(Protocol):
    name: str

    def available_pes(self, vm: "Vm", time: float) -> int: ...


class CurrentPolicy:
    name = "current"

    def available_pes(self, vm: "Vm", time: float) -> int:
        return current_available(vm, time)


class GratisAR2Policy:
    """
    Прогноз по AR(2) на coarse-истории. Может только ужесточить Current,
    но не ослабить.
    """

    name = "gratis"

    def __init__(self, predictor: Optional[ARPredictor] = None):
        self.predictor = predictor or ARPredictor()

    def available_pes(self, vm: "Vm", time: float) -> int:
        now = current_available(vm, time)
        key = vm.coarse.bucket_of(time)
        if key < 2:
            return now
        # за концом истории серия плоская: хвост передаём одним числом
        upto = min(key, vm.coarse.last_bucket)
        series = vm.coarse.series(upto=upto)
        forecast = self.predictor.forecast(series, series[-1], key - upto)
        ava = _from_forecast(forecast, vm.total_pes)
        log.debug(
            "vm=%s gratis t=%s phi=(%s, %s) forecast=%s ava=%d now=%d",
            vm.vm_id, time, self.predictor.phi1, self.predictor.phi2, forecast, ava, now,
        )
        return min(ava, now)


class BatchTablePolicy:
    """Только по таблице product: пик на [k, k + SLOT/fine] включительно."""

    name = "batch"

    def available_pes(self, vm: "Vm", time: float) -> int:
        idle = vm.scheduler.idle_pes(time)
        key = vm.product_usage.bucket_of(time)
        peak = vm.product_usage.window_max(key, vm.slot_ratio + 1)
        return _bounded(idle - busy_pes(peak, vm.total_pes), vm.total_pes)


class ArmaFixedPolicy:
    """
    Линейная комбинация двух последних значений с фиксированными
    коэффициентами, без переобучения.

    channel=None: coarse-история VM, коэффициенты 0.667 / 0.318.
    channel="total"/"product": оконные максимумы канала, шаг в SLOT,
    коэффициенты 1.0 / 1.0, результат не больше idle.
    """

    def __init__(self, coefficients: Optional[Tuple[Number, Number]] = None, channel: Optional[str] = None):
        if channel is not None and channel not in CHANNELS:
            raise ValueError(f"unknown channel {channel!r}")
        self.channel = channel
        default = ARMA_COEFFICIENTS if channel is None else CHANNEL_COEFFICIENTS
        self.coefficients = tuple(to_decimal(c) for c in (coefficients or default))
        self.name = "arma" if channel is None else f"arma-{channel}"

    def available_pes(self, vm: "Vm", time: float) -> int:
        if self.channel is None:
            key = vm.coarse.bucket_of(time)
            if key < 1:
                return current_available(vm, time)
            a, b = vm.coarse.value_at(key), vm.coarse.value_at(key - 1)
            return _from_forecast(fixed_forecast(a, b, self.coefficients), vm.total_pes)

        idle = _bounded(vm.scheduler.idle_pes(time), vm.total_pes)
        span = vm.slot_ratio
        key = vm.fine.bucket_of(time)
        if key < 3 * span:
            return idle
        a = channel_max(vm, self.channel, key)
        b = channel_max(vm, self.channel, key - span)
        return min(_from_forecast(fixed_forecast(a, b, self.coefficients), vm.total_pes), idle)


class FoarDualChannelPolicy:
    """AR(2) с переобучением по выбранному каналу (total или product)."""

    def __init__(self, channel: str = "total", predictor: Optional[ARPredictor] = None):
        if channel not in CHANNELS:
            raise ValueError(f"unknown channel {channel!r}")
        self.channel = channel
        self.predictor = predictor or ARPredictor()
        self.name = f"foar-{channel}"

    def available_pes(self, vm: "Vm", time: float) -> int:
        idle = _bounded(vm.scheduler.idle_pes(time), vm.total_pes)
        span = vm.slot_ratio
        key = vm.fine.bucket_of(time)
        if key < 3 * span:
            return idle
        series, tail = channel_series(vm, self.channel, key)
        forecast = self.predictor.forecast(series, ZERO, tail)
        log.debug("vm=%s %s t=%s forecast=%s", vm.vm_id, self.name, time, forecast)
        return min(_from_forecast(forecast, vm.total_pes), idle)


PolicyFactory = Callable[[Tuple[Number, Number], Tuple[Number, Number]], AvailabilityPolicy]

# (arma_coefficients, channel_coefficients) -> политика
POLICY_FACTORIES: Dict[str, PolicyFactory] = {
    "current": lambda arma, chan: CurrentPolicy(),
    "gratis": lambda arma, chan: GratisAR2Policy(),
    "batch": lambda arma, chan: BatchTablePolicy(),
    "arma": lambda arma, chan: ArmaFixedPolicy(arma),
    "arma-total": lambda arma, chan: ArmaFixedPolicy(chan, channel="total"),
    "arma-product": lambda arma, chan: ArmaFixedPolicy(chan, channel="product"),
    "foar-total": lambda arma, chan: FoarDualChannelPolicy("total"),
    "foar-product": lambda arma, chan: FoarDualChannelPolicy("product"),
}


def make_policy(
    name: str,
    arma_coefficients: Tuple[Number, Number] = ARMA_COEFFICIENTS,
    channel_coefficients: Tuple[Number, Number] = CHANNEL_COEFFICIENTS,
) -> AvailabilityPolicy:
    """Новый экземпляр политики по имени (у каждой VM - свой)."""
    try:
        factory = POLICY_FACTORIES[name]
    except KeyError:
        raise ValueError(
            f"unknown policy {name!r}, expected one of: {', '.join(sorted(POLICY_FACTORIES))}"
        ) from None
    return factory(arma_coefficients, channel_coefficients)
