"""Entry point for ``python -m pose_reel``."""
from .cli import main

if __name__ == "__main__":
    main()
