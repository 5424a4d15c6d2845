"""
Trend Intelligence Engine.

Raw per-source signals → relevance-filtered, lifecycle-staged trend records →
velocity/acceleration → peak prediction (heuristic / model / hybrid) →
opportunity window with urgency → strategy experiments.
"""

__version__ = "0.1.0"
