"""
pmon-client: session layer for a PMON process-monitoring console.

Keeps a console synchronized with the service over a reconnecting real-time
channel and delivers deployment artifacts with a chunked, retrying uploader.
"""

__version__ = "1.0.0"
