from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from lending_kpi.core.domain.errors import RevenueKpiError
from lending_kpi.core.events.event_bus import EventBus
from lending_kpi.core.events.sinks.sink_logging import LoggingEventSink
from lending_kpi.core.revenue.aggregator import KpiResult, calculate_kpi
from lending_kpi.core.revenue.kpi_config import KpiConfig
from lending_kpi.runtime.dataset import InMemoryChainDataProvider, load_chain_dataset
from lending_kpi.runtime.prometheus_metrics import PrometheusMetricsClient

LOGGER = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(path)
    return json.loads(path.read_text(encoding="utf-8"))


def _parse_timestamp(raw: str) -> int:
    """
    Accept unix seconds or an ISO-8601 datetime (naive means UTC).
    """
    if raw.isdigit():
        return int(raw)

    parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def print_kpi_summary(result: KpiResult) -> None:
    start = datetime.fromtimestamp(result.start_timestamp, tz=timezone.utc)
    end = datetime.fromtimestamp(result.end_timestamp_exclusive, tz=timezone.utc)

    print(f"User: {result.user_address}")
    print(f"Window: [{start.isoformat()}, {end.isoformat()})")
    print(f"KPI (USD): {result.kpi}")
    print()

    print("Chains:")
    for chain in result.chains:
        print(
            f"  - {chain.network_id}: "
            f"{len(chain.reserves)} reserves | "
            f"{chain.revenue_usd} USD"
        )
        for reserve in chain.reserves:
            print(
                f"      {reserve.reserve_token_id}: "
                f"raw={reserve.raw_revenue} | "
                f"price={reserve.usd_price} | "
                f"usd={reserve.revenue_usd}"
            )

    if result.failures:
        print()
        print("Failures:")
        for failure in result.failures:
            print(
                f"  - {failure.network_id}/{failure.reserve_token_id}: "
                f"{type(failure.error).__name__}: {failure.error}"
            )


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Attribute lending protocol revenue to one user over a window"
    )

    parser.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Path to KPI JSON config (networks, max_workers, allow_partial_results).",
    )

    parser.add_argument(
        "--dataset",
        type=Path,
        required=True,
        help="Path to an already-fetched chain dataset JSON.",
    )

    parser.add_argument(
        "--user-address",
        default=None,
        help="User to attribute revenue to (defaults to the dataset's user).",
    )

    parser.add_argument(
        "--start",
        default=None,
        help="Window start, unix seconds or ISO-8601 (defaults to the dataset's).",
    )

    parser.add_argument(
        "--end",
        default=None,
        help="Window end (exclusive), unix seconds or ISO-8601 (defaults to the dataset's).",
    )

    parser.add_argument(
        "--push-metrics",
        action="store_true",
        help="Push KPI gauges to the Prometheus Pushgateway if configured.",
    )

    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level.",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    # ------------------------------------------------------------------
    # Load config and dataset
    # ------------------------------------------------------------------

    try:
        config = KpiConfig.from_json_obj(_load_json(args.config))
        dataset = load_chain_dataset(args.dataset)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        print(f"Error: invalid input: {type(exc).__name__}: {exc}", file=sys.stderr)
        return 2

    user_address = args.user_address or dataset.user_address
    start = _parse_timestamp(args.start) if args.start else dataset.start_timestamp
    end = _parse_timestamp(args.end) if args.end else dataset.end_timestamp_exclusive

    if user_address is None or start is None or end is None:
        print(
            "Error: user address, start and end must come from the dataset or the command line.",
            file=sys.stderr,
        )
        return 2

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    event_bus = EventBus(sinks=[LoggingEventSink(LOGGER, level=logging.DEBUG)])

    try:
        result = calculate_kpi(
            provider=InMemoryChainDataProvider.from_dataset(dataset),
            config=config,
            user_address=user_address,
            start_timestamp=start,
            end_timestamp_exclusive=end,
            event_bus=event_bus,
        )
    except RevenueKpiError as exc:
        print(f"Error: {type(exc).__name__}: {exc}", file=sys.stderr)
        return 1
    except LookupError as exc:
        # Dataset does not cover the requested user or network.
        print(f"Error: missing input: {exc}", file=sys.stderr)
        return 2
    finally:
        event_bus.close()

    print_kpi_summary(result)

    if args.push_metrics:
        metrics = PrometheusMetricsClient()
        if metrics.is_enabled():
            metrics.record_kpi(result)
            try:
                metrics.push_all(job="lending_kpi")
            except OSError:
                LOGGER.warning("Prometheus push failed", exc_info=True)
        else:
            LOGGER.warning("PROMETHEUS_PUSHGATEWAY_URL not set; metrics not pushed")

    return 0


if __name__ == "__main__":
    sys.exit(main())
