import sys

from devdock.cli import main

sys.exit(main())
