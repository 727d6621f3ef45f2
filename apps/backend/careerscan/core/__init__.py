"""
Core helpers: URLs, HTTP client, dictionary, content parsing and platform detection.
"""
