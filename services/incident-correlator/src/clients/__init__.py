"""
TicketLink - Incident Correlator Clients
"""

from src.clients.zendesk import ZendeskTicketStore

__all__ = ["ZendeskTicketStore"]
