#!/usr/bin/env python3
"""Main entry point for the face recognition engine.

Usage:
    python main.py register "Alice"   # Enroll a face from the camera
    python main.py run                # Live recognition
    python main.py list               # Show enrolled identities

Or use the installed CLI:
    face-engine run
"""

import sys
from pathlib import Path


def main():
    """Main entry point - delegates to CLI."""
    if len(sys.argv) == 1:
        print(__doc__)
        print("Run 'python main.py --help' for more options")
        sys.exit(0)

    sys.path.insert(0, str(Path(__file__).parent / "src"))
    from face_engine.cli import main as cli_main
    cli_main()


if __name__ == "__main__":
    main()
