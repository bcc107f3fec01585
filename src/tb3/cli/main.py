"""
CLI entry point using Typer.

Provides commands for training with a periodized template:
- init / settings / inventory: profile and plate setup
- add-max / lifts / maxes / percentages / plates: maxes and loading
- templates / start-program / schedule / history: programs
- session ...: run the current workout live
"""

from ..logging_setup import configure_logging
from .app import app
from .commands import planning, profile, sessions  # noqa: F401  (registers commands)


def main() -> None:
    configure_logging()
    app()


if __name__ == "__main__":
    main()
