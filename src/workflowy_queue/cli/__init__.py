"""Command-line interface for Workflowy Queue."""
