# vm_forecast/snapshot/product_source.py
from __future__ import annotations

import csv
import json
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Union

import requests

from ..model.product_usage import ProductUsageLoadError, ProductUsageTable
from ..types import FINE_WIDTH

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 20.0

# Имена колонок как в исходной таблице `product`
TIME_KEYS = ("time", "bucket")
USAGE_KEYS = ("cpuUsage", "cpu_usage", "usage")


def _pick(row: Mapping[str, Any], keys: Iterable[str], what: str, index: int) -> Any:
    for k in keys:
        if k in row and row[k] not in (None, ""):
            return row[k]
    raise ProductUsageLoadError(f"row {index}: missing {what} column (one of {', '.join(keys)})")


def _rows_to_usage(rows: Iterable[Mapping[str, Any]]) -> Dict[int, Decimal]:
    usage: Dict[int, Decimal] = {}
    for i, row in enumerate(rows):
        raw_time = _pick(row, TIME_KEYS, "time", i)
        raw_usage = _pick(row, USAGE_KEYS, "usage", i)
        try:
            bucket = int(str(raw_time).strip())
            usage[bucket] = Decimal(str(raw_usage).strip())
        except (ValueError, InvalidOperation) as e:
            raise ProductUsageLoadError(f"row {i}: bad value {raw_time!r}/{raw_usage!r}") from e
    return usage


def _document_width(raw: Any, width: Optional[int]) -> int:
    """Ширина из документа; если вызывающий ждёт другую - таблицу не принимаем."""
    if raw is None:
        return width or FINE_WIDTH
    try:
        doc_width = int(raw)
    except (TypeError, ValueError) as e:
        raise ProductUsageLoadError(f"bad 'width' in product usage document: {raw!r}") from e
    if width is not None and doc_width != width:
        raise ProductUsageLoadError(
            f"product usage document has width {doc_width}, expected {width}"
        )
    return doc_width


def table_from_data(data: Any, width: Optional[int] = None) -> ProductUsageTable:
    """
    Таблица из JSON-подобных данных.

    Поддерживаемые формы:
    {
      "width": 300,
      "usage": {"10": 0.4, "11": 0.6}
    }
    или список строк [{"time": 10, "cpuUsage": 0.4}, ...]
    """
    if isinstance(data, list):
        usage = _rows_to_usage(data)
        w = width or FINE_WIDTH
    elif isinstance(data, dict):
        raw = data.get("usage")
        if raw is None:
            raise ProductUsageLoadError("product usage document has no 'usage' key")
        if isinstance(raw, list):
            usage = _rows_to_usage(raw)
        elif isinstance(raw, dict):
            usage = _rows_to_usage({"time": k, "usage": v} for k, v in raw.items())
        else:
            raise ProductUsageLoadError(f"unexpected 'usage' type: {type(raw).__name__}")
        w = _document_width(data.get("width"), width)
    else:
        raise ProductUsageLoadError(f"unexpected product usage document: {type(data).__name__}")

    try:
        return ProductUsageTable(usage, width=w)
    except ValueError as e:
        raise ProductUsageLoadError(str(e)) from e


def load_from_json(path: Union[str, Path], width: Optional[int] = None) -> ProductUsageTable:
    p = Path(path)
    try:
        data = json.loads(p.read_text("utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ProductUsageLoadError(f"cannot read product usage from {p}: {e}") from e
    table = table_from_data(data, width=width)
    log.info("Loaded product usage from %s (%d buckets, width=%d)", p, len(table), table.width)
    return table


def load_from_csv(path: Union[str, Path], width: Optional[int] = None) -> ProductUsageTable:
    """CSV с заголовком `time,cpuUsage` (формат выгрузки таблицы product)."""
    p = Path(path)
    try:
        with open(p, "r", encoding="utf-8", newline="") as f:
            usage = _rows_to_usage(csv.DictReader(f))
    except OSError as e:
        raise ProductUsageLoadError(f"cannot read product usage from {p}: {e}") from e
    try:
        table = ProductUsageTable(usage, width=width or FINE_WIDTH)
    except ValueError as e:
        raise ProductUsageLoadError(str(e)) from e
    log.info("Loaded product usage from %s (%d buckets)", p, len(table))
    return table


def load_from_url(url: str, width: Optional[int] = None, timeout: float = DEFAULT_TIMEOUT_S) -> ProductUsageTable:
    try:
        resp = requests.get(url, timeout=timeout)
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as e:
        raise ProductUsageLoadError(f"cannot fetch product usage from {url}: {e}") from e
    table = table_from_data(data, width=width)
    log.info("Fetched product usage from %s (%d buckets)", url, len(table))
    return table


def load_product_usage(
    source: Union[str, Path, None],
    width: Optional[int] = None,
    timeout: float = DEFAULT_TIMEOUT_S,
) -> ProductUsageTable:
    """
    Единая точка загрузки: URL, .csv или .json.
    Пустой source -> пустая таблица (нет сигнала).
    """
    if source is None or str(source) == "":
        return ProductUsageTable.empty(width or FINE_WIDTH)
    s = str(source)
    if s.startswith(("http://", "https://")):
        return load_from_url(s, width=width, timeout=timeout)
    if s.lower().endswith(".csv"):
        return load_from_csv(s, width=width)
    return load_from_json(s, width=width)
