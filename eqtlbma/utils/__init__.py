"""
Utility functions and data structures
"""
