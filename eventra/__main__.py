"""Allow ``python -m eventra``."""

import sys

from eventra.main import main

sys.exit(main())
