"""
Analytics Package
=================
Pure, synchronous engines over in-memory event lists.

Modules:
  window_correlation - chi-square per time window, consistency
  confidence         - weakest-tier confidence classification
  rank_correlation   - Spearman rho, strength, p-value
  daily_series       - per-day aggregation and lag alignment
  dose_response      - portion vs severity regression
  combinations       - synergistic cause-pair detection
  treatment          - before/after treatment effectiveness
  treatment_alerts   - advisory alert rules
  daily_logs         - sleep/mood thresholds as cause events
"""
