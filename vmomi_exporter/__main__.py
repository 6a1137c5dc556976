import sys

from vmomi_exporter.cli import main

sys.exit(main())
