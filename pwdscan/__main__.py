import sys

from pwdscan.cli import main

sys.exit(main())
