"""
Entry point for running studyengine as a module.

Usage:
    python -m studyengine study
    python -m studyengine stats
    python -m studyengine --help
"""
from .cli import main

if __name__ == "__main__":
    main()
