import sys

from spotter.main import main

sys.exit(main())
