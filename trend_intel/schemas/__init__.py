"""
Schemas package — all data models for the trend engine.

Models are organized by domain in submodules:
  - base.py: Enums (lifecycle, urgency, strategy, experiment status) and Geography
  - trends.py: RawSignal, TrendRecord, VelocityData, OpportunityWindow, TrendPrediction
  - experiments.py: AlgorithmExperiment, AlgorithmRecommendation
  - llm_outputs.py: Structured LLM output models ("LLM" suffix)
  - pipeline.py: Batch results (CollectionResult, PredictionBatch, ItemError)
  - analysis.py: Content gaps, cross-platform, sentiment, correlation, adoption

Import from the submodules directly; trends.py depends on the signal
functions, which themselves depend on base.py.
"""
