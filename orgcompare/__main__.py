"""Module entrypoint for ``python -m orgcompare``."""

from .cli import main


if __name__ == "__main__":
    main()
