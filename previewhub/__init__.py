"""
PreviewHub - live previews for AI generated projects
"""

__version__ = "1.0.0"
