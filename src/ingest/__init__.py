"""Ingest — raw collector payloads → validated LogRecords → searchable store.

Modules
───────
  entries    — RawEntry tagged variant and object-or-array normalisation
  parser     — one raw object → LogRecord (or ParseError)
  indexer    — LogIndexer: parse, order, stamp and bulk-write a batch
  buffer     — IngestBuffer: accumulate entries per source, flush to the indexer
  s3_source  — S3 event notifications → RawEntries (boto3)
"""
