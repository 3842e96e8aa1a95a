"""
ShelfSync - offline-first synchronization for a personal book library
"""

__version__ = "1.0.0"
