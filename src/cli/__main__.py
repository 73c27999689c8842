"""Allow ``python -m src.cli`` to run the ingest CLI."""

import sys

from src.cli.ingest import main

sys.exit(main())
