import sys

from scanforge.cli.main import main

sys.exit(main())
