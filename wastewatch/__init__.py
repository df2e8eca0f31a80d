"""
WasteWatch AI
Report intake and cleanup verification pipeline for municipal garbage reports.
"""

__version__ = "0.3.0"
