"""
Worker Supervisor - keeps a single long-running worker process alive.

Launches the worker with inherited stdio, restarts it after crashes within a
fixed retry budget, and relays termination signals so the worker and the
supervisor shut down together.
"""

__version__ = "0.1.0"
