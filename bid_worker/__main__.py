import sys

from bid_worker.cli import main

sys.exit(main())
