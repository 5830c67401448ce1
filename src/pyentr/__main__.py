import sys

from pyentr.cli import main

sys.exit(main())
