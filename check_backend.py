# check_backend.py
from __future__ import annotations

import argparse

import requests

from vm_forecast.model.product_usage import ProductUsageTable
from vm_forecast.model.vm import Vm
from vm_forecast.sim.scheduler import ReportedScheduler


BASE_URL = "http://localhost:8000"

# (time, busy_pes, product_pes)
OBSERVATIONS = [
    (0.0, 1, 0),
    (300.0, 1, 0),
    (600.0, 2, 1),
    (900.0, 8, 2),
    (1200.0, 5, 2),
    (1500.0, 6, 1),
]
POLICIES = ["current", "gratis", "batch", "arma", "foar-total", "foar-product"]


def local_answers(total_pes: int, product: dict) -> dict:
    """Считаем доступность напрямую, без HTTP."""
    sched = ReportedScheduler(total_pes)
    vm = Vm("check-local", total_pes, sched, ProductUsageTable(product))
    for t, busy, prod in OBSERVATIONS:
        sched.report(busy, prod)
        vm.update_processing(t)
    last = OBSERVATIONS[-1][0]
    return {p: vm.resources.available_pes_by(p, last) for p in POLICIES}


def api_answers(base_url: str, total_pes: int, product: dict) -> dict:
    vm_id = "check-remote"
    resp = requests.post(
        f"{base_url}/vms",
        json={"vm_id": vm_id, "total_pes": total_pes, "product_usage": product},
        timeout=10,
    )
    if resp.status_code != 409:
        resp.raise_for_status()
    for t, busy, prod in OBSERVATIONS:
        resp = requests.post(
            f"{base_url}/vms/{vm_id}/observe",
            json={"time": t, "busy_pes": busy, "product_pes": prod},
            timeout=10,
        )
        resp.raise_for_status()
    last = OBSERVATIONS[-1][0]
    out = {}
    for p in POLICIES:
        resp = requests.get(f"{base_url}/vms/{vm_id}/available", params={"time": last, "policy": p}, timeout=10)
        resp.raise_for_status()
        out[p] = resp.json()["available_pes"]
    return out


def main():
    parser = argparse.ArgumentParser(description="Compare in-process estimates with the API")
    parser.add_argument("--url", default=BASE_URL)
    parser.add_argument("--pes", type=int, default=10)
    args = parser.parse_args()

    product = {5: 0.2, 6: 0.3}
    local = local_answers(args.pes, product)
    remote = api_answers(args.url, args.pes, product)

    print("=== AVAILABLE PEs ===")
    ok = True
    for p in POLICIES:
        same = local[p] == remote[p]
        ok = ok and same
        print(f"{p:14s} local={local[p]:4d} api={remote[p]:4d} {'OK' if same else 'MISMATCH'}")
    print("ALL OK:", ok)


if __name__ == "__main__":
    main()
