import sys

from playlistinator.cli import main

sys.exit(main())
