"""
Entry point for running camera detection as a module.

Usage:
    python -m camera_detection [hours]
"""

from .cli import main

if __name__ == "__main__":
    main()
