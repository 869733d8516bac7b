"""Allow running the CLI with ``python -m circulation``."""

from .cli import main

main()
