import sys

from vmstarter.main import main

sys.exit(main())
