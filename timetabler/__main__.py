"""
Entry point for running timetabler as a module.

Usage:
    python -m timetabler solve input.json -o output.json
    python -m timetabler validate input.json
    python -m timetabler view output.json --teacher T001
    python -m timetabler generate sample.json --size small
"""

from timetabler.cli import main

if __name__ == "__main__":
    main()
