"""CLI entry point for adshoot.cli module.

Enables execution via: python -m adshoot.cli (runs repair_photoshoots)
"""

from adshoot.cli.repair_photoshoots import main

if __name__ == "__main__":
    main()
