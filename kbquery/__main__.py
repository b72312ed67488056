import sys

from kbquery.cli import main

sys.exit(main())
