"""
markcrawl: scoped headless-browser crawler that turns pages into markdown
and delivers them to caller webhooks.
"""

__version__ = "0.1.0"
