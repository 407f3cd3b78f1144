"""CLI del display de temperaturas.

Ejecutar:
    python -m display_service --scale fahrenheit
    python -m display_service --serve --port 8080
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional
from zoneinfo import ZoneInfo

import uvicorn

from common.config import get_settings
from common.influx import create_influx_client

from .app import create_app
from .queries import QueryError, TemperatureQueries
from .report import TemperatureReporter
from .temperatures import TemperatureScale

logger = logging.getLogger(__name__)


def main(argv: Optional[list] = None) -> int:
    p = argparse.ArgumentParser(description="AcuRite temperature summary since local midnight")
    p.add_argument("--scale", default="celsius", help="celsius or fahrenheit")
    p.add_argument("--serve", action="store_true", help="serve GET /v1/temperatures instead of printing")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=8080)
    p.add_argument("--log-level", default="WARNING")
    args = p.parse_args(argv)

    try:
        scale = TemperatureScale.parse(args.scale)
    except ValueError as e:
        p.error(str(e))

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    settings = get_settings()
    with create_influx_client(settings) as client:
        queries = TemperatureQueries(
            client.query_api(),
            bucket=settings.influx_bucket,
            measurement=settings.influx_measurement,
            tz=ZoneInfo(settings.display_timezone),
        )
        reporter = TemperatureReporter(queries, scale=scale)

        if args.serve:
            uvicorn.run(create_app(reporter), host=args.host, port=args.port)
            return 0

        try:
            sys.stdout.write(reporter.report())
        except QueryError as e:
            logger.error("[DISPLAY] %s", e)
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
