# SPDX-License-Identifier: MIT

"""``python -m kub_hygiene``: run the periodic agent until SIGINT/SIGTERM."""

from __future__ import annotations

import logging
import signal
import sys

from kub_hygiene.agent import PeriodicRunner, Scanner
from kub_hygiene.config import Settings
from kub_hygiene.logging_config import setup_logging
from kub_hygiene.provider import connect

logger = logging.getLogger("kub_hygiene")


def main() -> int:
    try:
        settings = Settings.from_env()
    except ValueError as e:
        print(f"kub-hygiene: invalid configuration: {e}", file=sys.stderr)
        return 2

    setup_logging(settings.log_level, settings.log_format)

    try:
        api_client = connect(settings.kubeconfig, settings.context)
    except Exception as e:
        logger.error("failed to connect to Kubernetes cluster: %s", e)
        return 1

    runner = PeriodicRunner(Scanner.from_settings(settings, api_client), settings.scan_interval)

    def _shutdown(signum, frame):
        logger.info("received signal %d, stopping", signum)
        runner.stop()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    runner.run_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())
