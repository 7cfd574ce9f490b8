import sys

from caffeinekit.cli import main

if __name__ == "__main__":
    sys.exit(main())
