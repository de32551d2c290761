"""
Download a Google Photos library into a local folder tree.
"""

__version__ = "0.2.0"
