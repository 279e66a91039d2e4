"""
Headless service runner.

Starts the scheduler without serving HTTP and blocks until SIGINT/SIGTERM,
then waits for running backups before exiting. Startup failures exit with
status 1 so a service manager can apply its recovery policy.
"""

import logging
import signal
import sys
import threading

from dumpkeeper import create_app
from dumpkeeper.scheduler import is_scheduler_running, stop_scheduler


logger = logging.getLogger('dumpkeeper')


def main(config_name=None):
    stop_requested = threading.Event()

    def _request_stop(signum, frame):
        logger.info(f"Received signal {signum}, shutting down")
        stop_requested.set()

    try:
        create_app(config_name)
    except Exception:
        logger.exception("An unexpected error occurred while starting up the backup service")
        sys.exit(1)

    if not is_scheduler_running():
        logger.warning("Scheduler is not running in this process (check SCHEDULER_ENABLED, "
                       "SCHEDULER_WORKER and FLASK_ENV), no backups will be taken")

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    # Event.wait() without timeout cannot be interrupted by signals on Windows
    while not stop_requested.wait(timeout=1):
        pass

    stop_scheduler()
    logger.info("Backup service stopped")


if __name__ == '__main__':
    main()
