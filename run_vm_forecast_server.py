# run_vm_forecast_server.py
import argparse
import logging
import os
from pathlib import Path

import uvicorn

from vm_forecast.config import POLICY_NAMES, get_settings
from vm_forecast.sim.replay import load_trace_csv, run_replay, summarize
from vm_forecast.snapshot.io import save_history_csv, save_replay_json, save_task_events_csv
from vm_forecast.snapshot.product_source import load_product_usage

logging.basicConfig(level=logging.INFO)
log = logging.getLogger("launcher")


def replay_trace(args: argparse.Namespace) -> None:
    """
    Прогоняет трассу задач до старта сервера и сохраняет историю VM
    в папку results/.
    """
    settings = get_settings()
    table = load_product_usage(
        settings.product_source,
        width=settings.fine_width,
        timeout=settings.product_timeout_s,
    )
    tasks = load_trace_csv(args.trace, args.pes, max_priority=args.max_priority)
    result = run_replay(
        tasks,
        vm_count=args.vms,
        total_pes=args.pes,
        policy=args.policy,
        settings=settings,
        product_usage=table,
    )

    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)
    save_history_csv(result.vms, out_dir / f"vm-history-{result.policy}.csv")
    save_replay_json(result, out_dir / f"replay-{result.policy}.json")
    save_task_events_csv(result, out_dir / f"task-events-{result.policy}.csv")
    log.info(f"Replay saved to {out_dir}: {summarize(result)}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="VM forecast server launcher")

    parser.add_argument("--trace", help="CSV task trace to replay before serving")
    parser.add_argument("--product", help="Product usage source (.json, .csv or URL)")
    parser.add_argument("--policy", choices=POLICY_NAMES, help="Availability policy")
    parser.add_argument("--vms", type=int, default=10, help="Number of VMs for replay")
    parser.add_argument("--pes", type=int, default=100, help="PEs per VM for replay")
    parser.add_argument("--max-priority", type=int, default=None, help="Keep tasks with priority below this")
    parser.add_argument("--out", default="results", help="Directory for replay output")
    parser.add_argument("--replay-only", action="store_true", help="Run the replay and exit")

    # Стандартные настройки uvicorn
    parser.add_argument("--host", default="0.0.0.0", help="Bind host")
    parser.add_argument("--port", type=int, default=8000, help="Bind port")
    parser.add_argument("--no-reload", action="store_true", help="Disable auto-reload")

    args = parser.parse_args()

    # сервер (и его reload-процесс) читает настройки из окружения
    if args.policy:
        os.environ["VMF_POLICY"] = args.policy
    if args.product:
        os.environ["VMF_PRODUCT_SOURCE"] = args.product

    if args.trace:
        replay_trace(args)
        if args.replay_only:
            raise SystemExit(0)

    uvicorn.run(
        "vm_forecast.api.server:app",
        host=args.host,
        port=args.port,
        reload=not args.no_reload,
    )
