import sys

from cos_upload.cli import main

sys.exit(main())
