import sys

from rfp_service.cli import main

sys.exit(main())
