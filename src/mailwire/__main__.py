#!/usr/bin/env python3
"""
Allow running mailwire as a module: python -m mailwire

Equivalent to the ``mailwire`` console script.
"""

from mailwire.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
