"""
Prompt Shelf - a local manager for grouped prompt snippets stored in a CSV file.
"""

__version__ = "0.1.0"
