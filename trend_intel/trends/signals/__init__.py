"""
Signal computation for trend records.

Each module is a family of pure functions with no I/O:
  - lifecycle.py: (growth, volume) → LifecycleStage
  - viral.py: (growth, volume) → viral coefficient
  - temporal.py: keyword history → velocity / acceleration
"""
