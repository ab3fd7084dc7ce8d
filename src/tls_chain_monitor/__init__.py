"""
Monitoring and discovery tools for TLS certificate chains.
"""

__version__ = "0.1.0"
