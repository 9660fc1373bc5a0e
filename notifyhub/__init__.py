"""
notifyhub: real-time notification delivery and toast lifecycle management.
"""

__version__ = "0.1.0"
