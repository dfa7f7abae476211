import random
from decimal import Decimal

import pytest

from vm_forecast.sim.policies import (
    ArmaFixedPolicy, FoarDualChannelPolicy, GratisAR2Policy, channel_max, channel_series,
    current_available, make_policy,
)
from vm_forecast.config import POLICY_NAMES
from vm_forecast.sim.fixed_point import busy_pes
from vm_forecast.sim.predictor import ARPredictor

TABLE_B = {10: 0.4, 11: 0.6, 12: 0.3}


def test_current_subtracts_product_window_peak(make_vm):
    vm = make_vm(usage=TABLE_B, slot_width=900)
    # окно [8, 11) -> пик 0.4
    assert current_available(vm, 8 * 300) == 6
    assert current_available(vm, 10 * 300) == 4
    assert current_available(vm, 12 * 300) == 7
    assert current_available(vm, 20 * 300) == 10


def test_current_is_bounded(make_vm):
    vm = make_vm(usage={0: 1.0})
    vm.scheduler.report(4)
    assert current_available(vm, 0) == 0


def test_batch_window_includes_extra_bucket(make_vm):
    vm = make_vm(usage=TABLE_B, slot_width=900)
    assert vm.resources.available_pes_batch(10 * 300) == 4
    # окно [8, 12) уже видит 0.6, current - ещё нет
    assert vm.resources.available_pes_batch(8 * 300) == 4
    assert vm.resources.available_pes(8 * 300) == 6


def test_gratis_reference_series(make_vm):
    vm = make_vm()
    for t, v in ((0, 0.1), (300, 0.1), (600, 0.2), (900, 0.8)):
        vm.coarse.record(t, v)
    assert vm.resources.available_pes(900) == 10
    assert vm.resources.available_pes_gratis(900) == 2


def test_gratis_falls_back_on_short_history(make_vm):
    vm = make_vm(usage={0: 0.3})
    vm.scheduler.report(2)
    assert vm.resources.available_pes_gratis(0) == current_available(vm, 0)
    assert vm.resources.available_pes_gratis(300) == current_available(vm, 300)


def test_gratis_never_exceeds_current(make_vm):
    vm = make_vm(usage={3: 0.5})
    vm.scheduler.report(1)
    for t in range(0, 1500, 300):
        vm.coarse.record(t, 0.05)
    assert vm.resources.available_pes_gratis(900) <= current_available(vm, 900)
    assert vm.resources.available_pes_gratis(900) == 4


def test_arma_on_coarse_history(make_vm):
    vm = make_vm()
    vm.coarse.record(0, 0.5)
    vm.coarse.record(300, 0.4)
    # 0.667 * 0.4 + 0.318 * 0.5 = 0.4258 -> 5 busy
    assert vm.resources.available_pes_arma(300) == 5


def test_arma_first_bucket_is_current(make_vm):
    vm = make_vm(usage={0: 0.2})
    assert vm.resources.available_pes_arma(0) == 8


def _steady(vm, busy, product=0, ticks=5):
    vm.scheduler.report(busy, product)
    for i in range(ticks):
        vm.update_processing(i * 300)


def test_channel_helpers(make_vm):
    vm = make_vm(slot_width=600)
    vm.scheduler.report(5, 2)
    for i in range(4):
        vm.update_processing(i * 300)
    assert channel_max(vm, "total", 3) == Decimal("0.5")
    assert channel_max(vm, "product", 3) == Decimal("0.2")
    assert channel_max(vm, "product", 4) == 0
    assert channel_series(vm, "total", 3) == ([Decimal("0.5"), Decimal("0.5")], 0)
    with pytest.raises(ValueError):
        channel_max(vm, "gpu", 0)


def test_foar_gated_to_idle(make_vm):
    vm = make_vm()
    _steady(vm, busy=4, ticks=3)
    assert vm.resources.available_pes_foar(600) == 6
    assert vm.resources.available_pes_foar(600, channel="product") == 6


def test_foar_steady_channels(make_vm):
    vm = make_vm()
    _steady(vm, busy=5)
    assert vm.resources.available_pes_foar(1200) == 5
    # product всё время 0 -> прогноз 0, упираемся в idle
    assert vm.resources.available_pes_foar(1200, channel="product") == 5


def test_arma_channel(make_vm):
    vm = make_vm()
    _steady(vm, busy=5)
    assert vm.resources.available_pes_arma(600, channel="total") == 5
    # 1.0 * 0.5 + 1.0 * 0.5 = 1 -> ничего не свободно
    assert vm.resources.available_pes_arma(1200, channel="total") == 0
    assert vm.resources.available_pes_arma(1200, channel="product") == 5


def test_policies_stay_in_range_on_random_histories(make_vm):
    rng = random.Random(7)
    for _ in range(20):
        usage = {b: round(rng.random(), 3) for b in range(0, 30) if rng.random() < 0.3}
        vm = make_vm(total_pes=16, usage=usage, slot_width=600)
        for i in range(25):
            busy = rng.randint(0, 16)
            vm.scheduler.report(busy, rng.randint(0, busy))
            vm.update_processing(i * 300 + rng.randint(0, 299))
        t = 24 * 300
        current = vm.resources.available_pes(t)
        for name in POLICY_NAMES:
            ava = vm.resources.available_pes_by(name, t)
            assert 0 <= ava <= 16, name
        assert vm.resources.available_pes_gratis(t) <= current


def test_policies_are_per_vm(make_vm):
    a = make_vm(vm_id="a")
    b = make_vm(vm_id="b")
    assert a.resources.policy("gratis") is not b.resources.policy("gratis")
    assert a.resources.policy("gratis") is a.resources.policy("gratis")


def test_make_policy_names():
    assert make_policy("arma-product").name == "arma-product"
    assert make_policy("foar-total").name == "foar-total"
    assert isinstance(make_policy("gratis"), GratisAR2Policy)
    with pytest.raises(ValueError):
        make_policy("oracle")


def test_unknown_channel_rejected():
    with pytest.raises(ValueError):
        ArmaFixedPolicy(channel="gpu")
    with pytest.raises(ValueError):
        FoarDualChannelPolicy("gpu")


def test_gratis_past_history_matches_forward_filled_series(make_vm):
    vm = make_vm()
    for t, v in ((0, 0.1), (300, 0.1), (600, 0.2), (900, 0.8)):
        vm.coarse.record(t, v)
    forecast = ARPredictor().forecast(vm.coarse.series(upto=40))
    expected = 0 if forecast >= 1 else 10 - busy_pes(forecast, 10)
    assert vm.resources.available_pes_gratis(40 * 300) == expected


def test_gratis_far_future_query(make_vm):
    vm = make_vm()
    for t, v in ((0, 0.1), (300, 0.1), (600, 0.2), (900, 0.8)):
        vm.coarse.record(t, v)
    ava = vm.resources.available_pes_gratis(300 * 10 ** 12)
    assert 0 <= ava <= current_available(vm, 300 * 10 ** 12)


def test_channel_series_folds_empty_tail(make_vm):
    vm = make_vm(slot_width=600)
    for i, busy in enumerate((2, 6, 3, 7, 4, 5)):
        vm.scheduler.report(busy, busy // 2)
        vm.update_processing(i * 300)
    for channel in ("total", "product"):
        full = [channel_max(vm, channel, b) for b in range(0, 41, 2)]
        head, tail = channel_series(vm, channel, 40)
        assert tail > 0
        assert head + [Decimal(0)] * tail == full

    head, tail = channel_series(vm, "total", 40)
    forecast = ARPredictor().forecast(head + [Decimal(0)] * tail)
    expected = min(10 - busy_pes(forecast, 10), vm.scheduler.idle_pes(0))
    assert vm.resources.available_pes_foar(40 * 300) == expected


def test_foar_far_future_query(make_vm):
    vm = make_vm()
    _steady(vm, busy=5)
    for channel in ("total", "product"):
        assert 0 <= vm.resources.available_pes_foar(300 * 10 ** 12, channel=channel) <= 5
