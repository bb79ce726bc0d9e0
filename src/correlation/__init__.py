"""Correlation engine — windowed scan, indicator matching, dedup, alerting.

Modules
───────
  predicates — pluggable match policies (flag-based, indicator lookup, any-of)
  deadline   — per-run deadline tracking
  engine     — CorrelationEngine.run(window): query → match → claim → publish → confirm
"""
