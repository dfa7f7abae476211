# vm_forecast/model/product_usage.py
from __future__ import annotations

from decimal import Decimal
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Tuple

from ..sim.fixed_point import ZERO, Number, to_decimal
from ..types import FINE_WIDTH, Bucket


class ProductUsageLoadError(RuntimeError):
    """Таблицу загрузки продукта не удалось прочитать целиком."""


class ProductUsageTable:
    """
    Загрузка co-tenant ("product") нагрузки по fine-бакетам.

    Загружается один раз при создании VM и дальше не меняется.
    Отсутствующий бакет == нет сигнала == 0.
    """

    def __init__(self, usage: Mapping[int, Number], width: int = FINE_WIDTH):
        if width <= 0:
            raise ValueError(f"bucket width must be positive, got {width}")
        frozen: Dict[int, Decimal] = {}
        for bucket, fraction in usage.items():
            value = to_decimal(fraction)
            if not value.is_finite() or not ZERO <= value <= 1:
                raise ValueError(f"product usage for bucket {bucket} out of [0, 1]: {fraction}")
            frozen[int(bucket)] = value
        self.width = width
        self._usage: Mapping[int, Decimal] = MappingProxyType(frozen)

    @classmethod
    def empty(cls, width: int = FINE_WIDTH) -> "ProductUsageTable":
        return cls({}, width=width)

    def bucket_of(self, time: float) -> Bucket:
        return Bucket(int(time // self.width))

    def usage(self, bucket: int) -> Decimal:
        return self._usage.get(bucket, ZERO)

    def window_max(self, bucket: int, count: int) -> Decimal:
        """Максимум по бакетам [bucket, bucket + count)."""
        best = ZERO
        for b in range(bucket, bucket + count):
            v = self._usage.get(b)
            if v is not None and v > best:
                best = v
        return best

    def __len__(self) -> int:
        return len(self._usage)

    def __iter__(self) -> Iterator[Tuple[int, Decimal]]:
        return iter(sorted(self._usage.items()))

    def as_mapping(self) -> Mapping[int, Decimal]:
        return self._usage
