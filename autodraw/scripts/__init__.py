"""Command-line entry points (``python -m autodraw.scripts.<name>``)."""
