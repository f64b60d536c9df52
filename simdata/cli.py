from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Optional, Sequence

from simdata.config import get_settings
from simdata.core.runner import run_simdata
from simdata.utils.exceptions import HostUnreachableError, SimDataException
from simdata.utils.observability import configure_logging

logger = logging.getLogger("simdata.cli")


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="simdata",
        description=(
            "Populate a SensorBase with the SimData scenarios. "
            "Settings are read from SIMDATA_* environment variables."
        ),
    )
    parser.add_argument("host", help="SensorBase host URL, e.g. http://localhost:9876/sensorbase")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    try:
        reports = asyncio.run(run_simdata(args.host, settings))
    except HostUnreachableError as exc:
        logger.error("simdata.cli.host_unreachable %s", json.dumps(exc.to_dict(), default=str))
        return 2
    except SimDataException as exc:
        logger.error("simdata.cli.failed %s", json.dumps(exc.to_dict(), default=str))
        return 1

    for report in reports:
        logger.info(
            "simdata.cli.scenario scenario=%s project=%s days=%d events=%d",
            report.scenario,
            report.project,
            report.days,
            report.events,
        )
    return 0


def run() -> None:
    raise SystemExit(main())


if __name__ == "__main__":
    run()
