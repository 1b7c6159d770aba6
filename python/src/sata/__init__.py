"""
SATA identity, authorization and tenant lifecycle service.
"""

__version__ = "0.1.0"
