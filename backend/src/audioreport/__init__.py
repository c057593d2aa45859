"""
Audio Report - analytics report to spoken summary to published audio.
"""

__version__ = "0.1.0"
