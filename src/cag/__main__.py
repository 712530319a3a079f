"""Allow running as `python -m cag`."""

from .cli.main import main

if __name__ == "__main__":
    main()
