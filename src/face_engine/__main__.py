"""Allow running as ``python -m face_engine``."""

from .cli import main

if __name__ == "__main__":
    main()
