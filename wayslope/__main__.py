import sys

from wayslope.cli import main

sys.exit(main())
