import sys

from asyncscope.cli import main

sys.exit(main())
