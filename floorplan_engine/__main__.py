"""Entry point for running floorplan_engine as a module.

Usage:
    python -m floorplan_engine <command> [options]
"""
from .cli import main

if __name__ == "__main__":
    raise SystemExit(main())
