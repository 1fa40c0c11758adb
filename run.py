"""Run the worker supervisor."""

import sys

from worker_supervisor.main import main

if __name__ == "__main__":
    sys.exit(main())
