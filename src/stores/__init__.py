"""Collaborator capability interfaces and their adapters.

Modules
───────
  base          — abstract SearchStore / IndicatorStore / DedupStore / NotificationChannel
  memory        — thread-safe in-process implementations (tests, local runs)
  opensearch    — httpx client for the searchable store and indicator store
  sqlite_dedup  — persistent dedup store with atomic insert-if-absent
"""
