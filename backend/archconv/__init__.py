"""
archconv: batch conversion of file collections into archival formats.

Files are identified by PRONOM code, routed through one or more converter
back-ends, and verified by re-identification before they count as converted.
"""

__version__ = "0.1.0"
