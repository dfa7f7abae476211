# vm_forecast/model/history.py
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Dict, Iterator, List, Optional, Tuple

from ..sim.fixed_point import ZERO, Number, clamp_unit, to_decimal
from ..types import Bucket

log = logging.getLogger(__name__)


class UtilizationHistory:
    """
    История загрузки VM по бакетам фиксированной ширины.

    - в бакете хранится пик (max), а не среднее;
    - бакет 0 засеян нулём, поэтому префикс 0..last_bucket всегда без дыр;
    - пропущенные бакеты заполняются последним известным значением
      (forward-fill), интерполяции нет;
    - история только растёт, вытеснения нет.
    """

    def __init__(self, width: int):
        if width <= 0:
            raise ValueError(f"bucket width must be positive, got {width}")
        self.width = width
        self._samples: Dict[int, Decimal] = {0: ZERO}
        self._last = 0

    def bucket_of(self, time: float) -> Bucket:
        return Bucket(int(time // self.width))

    def record(self, time: float, fraction: Number) -> Bucket:
        bucket = self.bucket_of(time)
        if bucket < 0:
            raise ValueError(f"negative simulation time: {time}")
        value = clamp_unit(to_decimal(fraction))

        prev = self._samples.get(bucket)
        if prev is None or prev < value:
            self._samples[bucket] = value

        if bucket > self._last:
            fill = self._samples[self._last]
            for b in range(self._last + 1, bucket):
                self._samples[b] = fill
            if bucket - self._last > 1:
                log.debug("forward-filled buckets %d..%d with %s", self._last + 1, bucket - 1, fill)
            self._last = bucket
        return bucket

    # --- чтение ---

    @property
    def last_bucket(self) -> Bucket:
        return Bucket(self._last)

    def __len__(self) -> int:
        return self._last + 1

    def __contains__(self, bucket: int) -> bool:
        return bucket in self._samples

    def get(self, bucket: int) -> Optional[Decimal]:
        return self._samples.get(bucket)

    def value_at(self, bucket: int) -> Decimal:
        """Значение бакета; за концом истории - последнее известное."""
        if bucket < 0:
            return ZERO
        if bucket > self._last:
            return self._samples[self._last]
        return self._samples[bucket]

    def series(self, upto: Optional[int] = None) -> List[Decimal]:
        """Упорядоченный префикс 0..upto (включительно), за концом - forward-fill."""
        end = self._last if upto is None else upto
        return [self.value_at(b) for b in range(end + 1)]

    def window_max(self, bucket: int, span: int, backward: bool = False) -> Decimal:
        """
        Максимум по записанным бакетам окна из `span` штук.

        backward=False: [bucket, bucket + span)
        backward=True:  (bucket - span, bucket]
        """
        if backward:
            keys = range(bucket - span + 1, bucket + 1)
        else:
            keys = range(bucket, bucket + span)
        best = ZERO
        for b in keys:
            v = self._samples.get(b)
            if v is not None and v > best:
                best = v
        return best

    def items(self) -> Iterator[Tuple[Bucket, Decimal]]:
        for b in range(self._last + 1):
            yield Bucket(b), self._samples[b]

    def to_floats(self) -> Dict[int, float]:
        return {int(b): float(v) for b, v in self.items()}
