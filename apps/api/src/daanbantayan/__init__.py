"""
Daanbantayan School Portal API - authentication and session subsystem.
"""

__version__ = "0.1.0"
