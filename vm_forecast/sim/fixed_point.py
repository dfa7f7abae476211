# vm_forecast/sim/fixed_point.py
from __future__ import annotations

import math
from decimal import (
    Decimal,
    Context,
    DivisionByZero,
    Inexact,
    InvalidOperation,
    Overflow,
    ROUND_HALF_DOWN,
)
from typing import Union

Number = Union[Decimal, float, int, str]

SCALE = 10

# Сложение/умножение должны быть точными: любой Inexact здесь - ошибка.
EXACT = Context(
    prec=1000,
    rounding=ROUND_HALF_DOWN,
    traps=[InvalidOperation, DivisionByZero, Overflow, Inexact],
)

ZERO = Decimal(0)
ONE = Decimal(1)


def to_decimal(value: Number) -> Decimal:
    """
    Перевод числа в Decimal.

    float идёт через repr (0.1 -> Decimal("0.1")), а не через двоичное
    разложение, чтобы результат не зависел от представления float.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def add(*values: Decimal) -> Decimal:
    total = ZERO
    for v in values:
        total = EXACT.add(total, v)
    return total


def sub(a: Decimal, b: Decimal) -> Decimal:
    return EXACT.subtract(a, b)


def mul(a: Decimal, b: Decimal) -> Decimal:
    return EXACT.multiply(a, b)


def divide(dividend: Decimal, divisor: Decimal, scale: int = SCALE) -> Decimal:
    """
    dividend / divisor, округлённое до `scale` знаков после запятой по
    правилу ROUND_HALF_DOWN.

    Считается в целых числах, без промежуточного округления: ровно
    половина уходит к нулю, всё что больше половины - от нуля.
    """
    if divisor == 0:
        raise ZeroDivisionError("fixed-point division by zero")
    n1, d1 = dividend.as_integer_ratio()
    n2, d2 = divisor.as_integer_ratio()
    num = n1 * d2 * 10 ** scale
    den = d1 * n2
    if den < 0:
        num, den = -num, -den
    q, r = divmod(abs(num), den)
    if 2 * r > den:
        q += 1
    if num < 0:
        q = -q
    return EXACT.scaleb(Decimal(q), -scale)


def clamp_unit(value: Decimal) -> Decimal:
    if value < ZERO:
        return ZERO
    if value > ONE:
        return ONE
    return value


def busy_pes(fraction: Number, total_pes: int) -> int:
    """ceil(fraction * total_pes), fraction предварительно зажат в [0, 1]."""
    frac = clamp_unit(to_decimal(fraction))
    return int(math.ceil(mul(frac, Decimal(total_pes))))
