"""Allow running as ``python -m hontodana.portability``."""

from .cli import app

app()
