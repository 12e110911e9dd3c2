"""
Utility functions for the omicsmath package.
"""
