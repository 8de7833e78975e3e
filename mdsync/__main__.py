"""Allow running as ``python -m mdsync``."""

import sys

from .main import main

sys.exit(main())
