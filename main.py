"""Roleplay Forge — command-line launcher. See roleplay_forge/cli.py."""

import sys

from roleplay_forge.cli import main

if __name__ == "__main__":
    sys.exit(main())
