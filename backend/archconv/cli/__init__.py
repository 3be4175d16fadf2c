"""
Command line entrypoint.
"""
