import sys

from schemaport.cli import main

sys.exit(main())
