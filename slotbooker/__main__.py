"""
Entry point for ``python -m slotbooker``.

Usage: python -m slotbooker [command] [options]
"""

from .cli.app import app

if __name__ == "__main__":
    app()
