# tests/conftest.py
import pytest

from vm_forecast.config import Settings, reset_settings
from vm_forecast.model.product_usage import ProductUsageTable
from vm_forecast.model.vm import Vm
from vm_forecast.sim.scheduler import ReportedScheduler

ENV_VARS = (
    "VMF_FINE_WIDTH",
    "VMF_SLOT_WIDTH",
    "VMF_POLICY",
    "VMF_PRODUCT_SOURCE",
    "VMF_PRODUCT_TIMEOUT",
)


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Каждый тест стартует с настройками по умолчанию."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def make_vm():
    """Фабрика VM с ReportedScheduler и явной таблицей product."""

    def _make(total_pes=10, usage=None, fine_width=300, slot_width=300, vm_id="vm-test"):
        settings = Settings(fine_width=fine_width, slot_width=slot_width)
        table = ProductUsageTable(usage or {}, width=fine_width)
        return Vm(vm_id, total_pes, ReportedScheduler(total_pes), table, settings)

    return _make
