# Development launcher: backend API plus an optional frontend dev server
#
# Usage:  python -m grievance_desk.devserver
#         FRONTEND_CMD="npm start" FRONTEND_DIR=../web python -m grievance_desk.devserver

import logging
import shlex
import signal
import subprocess
import sys
import time
from typing import List, Optional

from . import config

logger = logging.getLogger(__name__)

FRONTEND_DELAY_SECONDS = 3
POLL_SECONDS = 0.5

def backend_command() -> List[str]:
    return [sys.executable, "-m", "grievance_desk"]

def frontend_command() -> Optional[List[str]]:
    return shlex.split(config.FRONTEND_CMD) if config.FRONTEND_CMD else None

def _stop(proc: Optional[subprocess.Popen], name: str) -> None:
    if proc is None or proc.poll() is not None:
        return
    logger.info("Stopping %s (pid %d)", name, proc.pid)
    proc.send_signal(signal.SIGINT)
    try:
        proc.wait(timeout=10)
    except subprocess.TimeoutExpired:
        proc.kill()

def run() -> int:
    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(message)s")
    logger.info("Starting Backend API Server on http://localhost:%d", config.PORT)
    backend = subprocess.Popen(backend_command())
    frontend = None

    try:
        cmd = frontend_command()
        if cmd:
            time.sleep(FRONTEND_DELAY_SECONDS)
            logger.info("Starting Frontend: %s", " ".join(cmd))
            frontend = subprocess.Popen(cmd, cwd=config.FRONTEND_DIR or None)
        logger.info("Press Ctrl+C to stop")

        # either process exiting brings the other down
        while True:
            if backend.poll() is not None:
                logger.info("Backend process exited with code %s", backend.returncode)
                break
            if frontend is not None and frontend.poll() is not None:
                logger.info("Frontend process exited with code %s", frontend.returncode)
                break
            time.sleep(POLL_SECONDS)
    except KeyboardInterrupt:
        logger.info("Shutting down development servers...")
    finally:
        _stop(frontend, "frontend")
        _stop(backend, "backend")
    return backend.returncode or 0

if __name__ == "__main__":
    sys.exit(run())
