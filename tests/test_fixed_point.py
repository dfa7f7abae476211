from decimal import Decimal

import pytest

from vm_forecast.sim.fixed_point import busy_pes, clamp_unit, divide, to_decimal


def test_divide_rounds_to_ten_places():
    assert divide(Decimal(1), Decimal(3)) == Decimal("0.3333333333")
    assert divide(Decimal(2), Decimal(3)) == Decimal("0.6666666667")
    assert divide(Decimal(3), Decimal(10)) == Decimal("0.3")


def test_divide_ties_go_toward_zero():
    assert divide(Decimal("0.00000000005"), Decimal(1)) == 0
    assert divide(Decimal("0.00000000015"), Decimal(1)) == Decimal("0.0000000001")
    assert divide(Decimal("-0.00000000015"), Decimal(1)) == Decimal("-0.0000000001")
    # больше половины - от нуля
    assert divide(Decimal("0.000000000051"), Decimal(1)) == Decimal("0.0000000001")


def test_divide_by_negative():
    assert divide(Decimal(1), Decimal(-3)) == Decimal("-0.3333333333")


def test_divide_by_zero():
    with pytest.raises(ZeroDivisionError):
        divide(Decimal(1), Decimal(0))


def test_to_decimal_uses_float_repr():
    assert to_decimal(0.1) == Decimal("0.1")
    assert to_decimal(3) == Decimal(3)
    assert to_decimal("0.25") == Decimal("0.25")


def test_clamp_unit():
    assert clamp_unit(Decimal("-0.2")) == 0
    assert clamp_unit(Decimal("1.7")) == 1
    assert clamp_unit(Decimal("0.42")) == Decimal("0.42")


def test_busy_pes_is_ceiling():
    assert busy_pes(Decimal("0.7953370691"), 10) == 8
    assert busy_pes(0.3, 10) == 3
    assert busy_pes(Decimal("0.31"), 10) == 4
    assert busy_pes(0, 10) == 0


def test_busy_pes_clamps_fraction():
    assert busy_pes(Decimal("1.5"), 10) == 10
    assert busy_pes(Decimal("-1"), 10) == 0
