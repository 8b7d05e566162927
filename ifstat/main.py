"""
Entrypoint module for schedulers.

Run as:

    python -m ifstat.main

The process prints one status line and exits with the plugin code
(0 OK, 1 WARNING, 2 CRITICAL, 3 UNKNOWN).
"""

import sys

from ifstat.check import main

if __name__ == "__main__":
    sys.exit(main())
