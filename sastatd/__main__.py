import sys

from sastatd.cli.cli import main

sys.exit(main())
