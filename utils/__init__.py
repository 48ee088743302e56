"""
Command-line support utilities.
"""
