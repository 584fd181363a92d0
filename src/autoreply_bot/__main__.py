"""Run the bot with ``python -m autoreply_bot``."""

import sys

from .cli import main

sys.exit(main())
