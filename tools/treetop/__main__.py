"""
Entry point for running treetop as a Python module.

This module enables the package to be executed directly via:
    python -m treetop <config> [options]

The actual implementation lives in cli.py so it can be imported and
tested independently.
"""

import sys

from .cli import main

# Guard ensures this only runs when executed as a script, not when imported
if __name__ == "__main__":
    sys.exit(main())
