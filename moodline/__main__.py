"""
Entry point for python -m moodline
"""
from .app import main

if __name__ == "__main__":
    main()
