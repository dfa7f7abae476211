# vm_forecast/sim/predictor.py
from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Sequence, Tuple

from .fixed_point import ONE, ZERO, Number, add, clamp_unit, divide, mul, sub, to_decimal

log = logging.getLogger(__name__)

INITIAL_PHI1 = Decimal("-0.509")
INITIAL_PHI2 = Decimal("-0.21")


class ARPredictor:
    """
    AR(2) по моментам Юла–Уокера.

    Коэффициенты принадлежат экземпляру (одна VM - свой предиктор) и
    пересчитываются на каждом вызове по всему префиксу истории, без окна.

    Арифметика десятичная: сложение и умножение точные, каждое деление
    округляется до 10 знаков по ROUND_HALF_DOWN.
    """

    def __init__(self, phi1: Number = INITIAL_PHI1, phi2: Number = INITIAL_PHI2):
        self.phi1 = to_decimal(phi1)
        self.phi2 = to_decimal(phi2)

    @property
    def coefficients(self) -> Tuple[Decimal, Decimal]:
        return self.phi1, self.phi2

    def fit(
        self,
        series: Sequence[Number],
        tail_value: Number = ZERO,
        tail_count: int = 0,
    ) -> Tuple[Decimal, Decimal]:
        """
        Пересчёт phi1/phi2 по серии.

        tail_value/tail_count: серия продолжается tail_count одинаковыми
        значениями tail_value (forward-fill за концом истории). Хвост
        учитывается в замкнутой форме, результат тот же, что и для
        развёрнутой серии.
        """
        x = [to_decimal(v) for v in series]
        tv = to_decimal(tail_value)
        m = max(tail_count, 0)
        n = len(x) + m
        if n < 3:
            raise ValueError(f"AR(2) fit needs at least 3 samples, got {n}")

        u = divide(add(*x, mul(Decimal(m), tv)), Decimal(n))

        dev = [sub(v, u) for v in x]
        d = sub(tv, u)
        variance = divide(
            add(*(mul(e, e) for e in dev), mul(Decimal(m), mul(d, d))), Decimal(n)
        )
        # r0 = mean + variance (не чистая дисперсия) - так считались эталонные прогоны
        r0 = add(u, variance)

        r1 = divide(_lagged_sum(dev, d, m, 1), Decimal(n - 1))
        r2 = divide(_lagged_sum(dev, d, m, 2), Decimal(n - 2))

        den = sub(mul(r0, r0), mul(r1, r1))
        num1 = sub(mul(r1, r0), mul(r1, r2))
        num2 = sub(mul(r0, r2), mul(r1, r1))

        if den == ZERO:
            # вырожденный случай: берём числитель как есть
            log.debug("Yule-Walker denominator is zero for n=%d, using raw numerators", n)
            self.phi1, self.phi2 = num1, num2
        else:
            self.phi1 = divide(num1, den)
            self.phi2 = divide(num2, den)
        return self.phi1, self.phi2

    def predict(self, a: Number, b: Number, c: Number) -> Decimal:
        """a = x[t], b = x[t-1], c = x[t-2]; результат зажат в [0, 1]."""
        a, b, c = to_decimal(a), to_decimal(b), to_decimal(c)
        raw = sub(
            add(mul(a, add(self.phi1, ONE)), mul(b, sub(self.phi2, self.phi1))),
            mul(c, self.phi2),
        )
        return clamp_unit(raw)

    def forecast(
        self,
        series: Sequence[Number],
        tail_value: Number = ZERO,
        tail_count: int = 0,
    ) -> Decimal:
        """fit по всей серии + прогноз следующего шага по трём последним точкам."""
        self.fit(series, tail_value, tail_count)
        last = list(series[-3:]) + [tail_value] * min(max(tail_count, 0), 3)
        return self.predict(last[-1], last[-2], last[-3])


def _lagged_sum(dev: List[Decimal], d: Decimal, m: int, lag: int) -> Decimal:
    """
    sum(dev[t] * dev[t + lag]) по серии dev + [d] * m.

    Пары внутри dev считаются явно, пары через границу и внутри хвоста -
    одним слагаемым на группу.
    """
    p = len(dev)
    n = p + m
    terms = [mul(dev[t], dev[t + lag]) for t in range(p - lag)]
    terms.extend(mul(dev[t], d) for t in range(max(0, p - lag), min(p, n - lag)))
    if m > lag:
        terms.append(mul(Decimal(m - lag), mul(d, d)))
    return add(*terms)


def fixed_forecast(a: Number, b: Number, coefficients: Tuple[Number, Number]) -> Decimal:
    """c1 * x[t] + c2 * x[t-1] с фиксированными коэффициентами, зажато в [0, 1]."""
    c1, c2 = (to_decimal(c) for c in coefficients)
    return clamp_unit(add(mul(to_decimal(a), c1), mul(to_decimal(b), c2)))
