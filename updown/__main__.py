import sys

from updown.cli import main

sys.exit(main())
