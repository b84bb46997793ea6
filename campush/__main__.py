"""
Entry point for running CamPush as a module.

This allows running the package with: python -m campush
"""

from .cli import main

if __name__ == '__main__':
    main()
