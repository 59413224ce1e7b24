"""Rate-limited request queue for the Workflowy API."""

__version__ = "0.1.0"
