import sys

from clustersync.cli import main

sys.exit(main())
