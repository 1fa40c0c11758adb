"""
Entry point for running the supervisor via `python -m worker_supervisor`.

Any arguments are taken as the worker command, e.g.
`python -m worker_supervisor node server-stable.js`.
"""

import sys

from .main import main

if __name__ == "__main__":
    sys.exit(main())
