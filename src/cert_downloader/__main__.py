import sys

from cert_downloader.main import main

sys.exit(main())
