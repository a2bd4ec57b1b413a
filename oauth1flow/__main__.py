"""Allow ``python -m oauth1flow``."""

import sys

from .cli import main


sys.exit(main())
