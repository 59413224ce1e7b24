"""Allow running as python -m workflowy_queue."""

from workflowy_queue.cli.app import app

if __name__ == "__main__":
    app()
