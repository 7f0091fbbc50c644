"""Allow `python -m warden`."""

import sys

from warden.cli.__main__ import main

sys.exit(main())
