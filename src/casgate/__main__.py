"""Allow running casgate as ``python -m casgate``."""

import sys

from casgate.cli import main

sys.exit(main())
