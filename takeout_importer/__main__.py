import sys

from takeout_importer.cli import main

sys.exit(main())
