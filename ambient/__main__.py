"""
Ambient package __main__ entry point.

Allows running with: python -m ambient
"""

import sys

from ambient.main import main

if __name__ == "__main__":
    sys.exit(main())
