"""Threat-intel fetcher — external indicator feed → indicator store.

Modules
───────
  feed       — OtxFeedClient: paginated GET with API-key header (httpx)
  normalize  — raw feed item → Indicator (type mapping, value canonicalisation)
  fetcher    — ThreatIntelFetcher.fetch_and_upsert(): one scheduled run
"""
