import sys

from html_to_image.cli import main

sys.exit(main())
