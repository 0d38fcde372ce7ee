"""
filesync - single-file TCP transfer with server-side checksum logging.

A client sends one file per connection; the server stores it under a
date-derived name and logs a checksum shortly after the write completes.
"""

__version__ = '1.0.0'
