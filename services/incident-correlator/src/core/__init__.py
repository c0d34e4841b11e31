"""
TicketLink - Incident Correlator Core Package
"""

from src.core.pattern_extractor import PatternExtractor
from src.core.ticket_matcher import TicketMatcher
from src.core.incident_registry import IncidentRegistry
from src.core.correlation_loop import CorrelationLoop

__all__ = ["PatternExtractor", "TicketMatcher", "IncidentRegistry", "CorrelationLoop"]
