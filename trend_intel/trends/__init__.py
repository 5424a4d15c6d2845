"""
Trend engine.

Modules:
  - signals/: Pure numeric signals (lifecycle, viral coefficient, velocity/acceleration)
  - pillars.py: Keyword → content pillar tags
  - relevance.py: Relevance scorer adapter over a pluggable backend
  - prediction.py: Peak strategies (heuristic, model, hybrid) and the fallback chain
  - opportunity.py: Opportunity window, urgency escalation, recommended actions
  - collector.py: Signal collection → scoring → persistence
  - service.py: TrendIntelligenceService, the public façade
"""
