"""Allow running as `python -m offer_scout`."""

import sys

from offer_scout.cli import main

sys.exit(main())
