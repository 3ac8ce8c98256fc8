"""
Entry point for ``python -m widgetscheduler``.
"""

from .cli.app import app

if __name__ == "__main__":
    app()
