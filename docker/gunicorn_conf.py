# Gunicorn configuration for Dumpkeeper
# Only one worker may own the backup scheduler, otherwise every job would
# run once per worker and the runs would race on the same backup folder.

import fcntl
import os
import logging

logger = logging.getLogger('gunicorn.error')

bind = os.environ.get('BIND', '0.0.0.0:5000')
workers = int(os.environ.get('WEB_CONCURRENCY', 2))
# Backups run in scheduler threads, never in the request path
graceful_timeout = int(os.environ.get('GRACEFUL_TIMEOUT', 3600))

# Held by the scheduler owner for its whole lifetime; released by the OS when it dies
SCHEDULER_LOCK_FILE = os.environ.get('SCHEDULER_LOCK_FILE', '/tmp/dumpkeeper-scheduler.lock')


def _acquire_scheduler_lock(path):
    """
    Try to take the scheduler ownership lock without blocking.

    Returns:
        The open lock file while the lock is held, or None
    """
    lock_file = open(path, 'a')
    try:
        fcntl.flock(lock_file, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError:
        lock_file.close()
        return None
    return lock_file


def post_fork(server, worker):
    """
    Called in the worker right after fork, before the app is loaded.

    The first worker to lock SCHEDULER_LOCK_FILE becomes the scheduler owner.
    A worker started to replace a dead owner picks the lock up again.

    Args:
        server: Gunicorn arbiter
        worker: Gunicorn worker instance
    """
    worker.scheduler_lock = _acquire_scheduler_lock(SCHEDULER_LOCK_FILE)

    if worker.scheduler_lock is not None:
        os.environ['SCHEDULER_WORKER'] = 'true'
        logger.info(f"Worker PID {worker.pid} (age={worker.age}): Designated as SCHEDULER OWNER")
    else:
        os.environ['SCHEDULER_WORKER'] = 'false'
        logger.info(f"Worker PID {worker.pid} (age={worker.age}): Standard HTTP worker (scheduler disabled)")


def worker_exit(server, worker):
    """Wait for running backups before the scheduler owner exits."""
    from dumpkeeper.scheduler import stop_scheduler
    stop_scheduler()

    lock_file = getattr(worker, 'scheduler_lock', None)
    if lock_file is not None:
        lock_file.close()
