import sys

from synthload.cli import main

sys.exit(main())
