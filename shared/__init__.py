"""
TicketLink - Shared Library
===========================

Common utilities, schemas, and constants used by the TicketLink services.
"""

__version__ = "0.1.0"
__author__ = "TicketLink Team"
