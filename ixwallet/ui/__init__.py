"""
IXWALLET UI - Terminal dashboard.
"""
