"""Allow running as `python -m urlrecorder`."""

import sys

from .cli import main

sys.exit(main())
