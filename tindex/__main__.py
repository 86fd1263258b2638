"""Allow ``python -m tindex``."""

from tindex.cli.main import main

if __name__ == "__main__":
    main()
