"""Entry point for running cellkernel from the command line.

Usage:
    python -m cellkernel run hello.py
"""

from cellkernel.cli import main

if __name__ == "__main__":
    main()
