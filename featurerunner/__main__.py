import sys

from featurerunner.cli import main

sys.exit(main())
