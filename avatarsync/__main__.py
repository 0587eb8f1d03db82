"""Entrypoint for `python -m avatarsync`."""

from avatarsync.cli.main import app, main

__all__ = ["app", "main"]


if __name__ == "__main__":
    main()
