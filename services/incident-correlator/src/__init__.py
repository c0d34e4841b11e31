"""
TicketLink - Incident Correlator Service
========================================

Watches the ticket store for open problem tickets, derives a signature for
each, and links incoming support tickets to the incident they belong to.
"""
