import sys

from forest_reconcile.cli import main

if __name__ == "__main__":
    sys.exit(main())
