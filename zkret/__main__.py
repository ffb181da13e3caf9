import sys

from zkret.cli import main

sys.exit(main())
