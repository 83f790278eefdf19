import sys

from opclogger.main import main

sys.exit(main())
