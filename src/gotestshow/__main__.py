"""Allow running as `python -m gotestshow`."""

import sys

from gotestshow.cli import main

sys.exit(main())
