"""
gridbase: bulk CSV import engine for spreadsheet-style tables.
"""

__version__ = "1.0.0"
