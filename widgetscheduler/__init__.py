"""
widgetscheduler - availability and booking engine for embeddable scheduling widgets.
"""

__version__ = "0.1.0"
