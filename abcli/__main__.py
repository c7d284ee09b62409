"""Allow ``python -m abcli <command> ...``."""

from abcli.cli import main

if __name__ == "__main__":
    main()
