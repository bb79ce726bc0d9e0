"""Alert delivery — AlertPublisher and notification channels.

Modules
───────
  publisher — AlertPublisher.publish(summary | alert) with typed failures
  channels  — SNS (boto3), webhook (httpx) and log-only channels
"""
