"""
careerscan - adaptive job-posting extraction from career pages.
"""

__version__ = "0.1.0"
