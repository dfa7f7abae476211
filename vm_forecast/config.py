# vm_forecast/config.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple

from .sim.policies import ARMA_COEFFICIENTS, CHANNEL_COEFFICIENTS, POLICY_FACTORIES
from .types import FINE_WIDTH

log = logging.getLogger(__name__)

DEFAULT_POLICY = "current"
POLICY_NAMES = tuple(POLICY_FACTORIES)


@dataclass(frozen=True)
class Settings:
    """
    Настройки оценщика.

    fine_width: ширина fine-бакета (таблица product, каналы FOAR)
    slot_width: ширина coarse-бакета (SLOT) для AR, кратна fine_width
    """

    fine_width: int = FINE_WIDTH
    slot_width: int = FINE_WIDTH
    default_policy: str = DEFAULT_POLICY
    arma_coefficients: Tuple[Decimal, Decimal] = ARMA_COEFFICIENTS
    channel_coefficients: Tuple[Decimal, Decimal] = CHANNEL_COEFFICIENTS
    product_source: Optional[str] = None
    product_timeout_s: float = 20.0

    def __post_init__(self) -> None:
        if self.fine_width <= 0 or self.slot_width <= 0:
            raise ValueError(
                f"bucket widths must be positive (fine={self.fine_width}, slot={self.slot_width})"
            )
        if self.slot_width % self.fine_width != 0:
            raise ValueError(
                f"slot_width={self.slot_width} must be a multiple of fine_width={self.fine_width}"
            )
        if self.default_policy not in POLICY_NAMES:
            raise ValueError(f"unknown policy {self.default_policy!r}")

    @property
    def slot_ratio(self) -> int:
        return self.slot_width // self.fine_width


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def settings_from_env() -> Settings:
    fine = _env_int("VMF_FINE_WIDTH", FINE_WIDTH)
    return Settings(
        fine_width=fine,
        slot_width=_env_int("VMF_SLOT_WIDTH", fine),
        default_policy=os.getenv("VMF_POLICY") or DEFAULT_POLICY,
        product_source=os.getenv("VMF_PRODUCT_SOURCE") or None,
        product_timeout_s=_env_float("VMF_PRODUCT_TIMEOUT", 20.0),
    )


_SETTINGS: Optional[Settings] = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = settings_from_env()
        log.info(
            "Settings: fine=%d slot=%d policy=%s",
            _SETTINGS.fine_width, _SETTINGS.slot_width, _SETTINGS.default_policy,
        )
    return _SETTINGS


def set_settings(settings: Settings) -> None:
    global _SETTINGS
    _SETTINGS = settings


def reset_settings() -> None:
    global _SETTINGS
    _SETTINGS = None
