"""Entry point for ``showerguard`` and ``python -m showerguard``."""

from __future__ import annotations

from showerguard import App, __version__


def main() -> None:
    App(version=__version__).cli()


if __name__ == "__main__":
    main()
