"""
Browser session, content expansion and extraction steps.
"""
