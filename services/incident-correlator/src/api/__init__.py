"""
TicketLink - Incident Correlator API
"""
