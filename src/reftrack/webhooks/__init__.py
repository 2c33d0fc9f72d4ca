"""Inbound payment webhook handling."""

from reftrack.webhooks.pipeline import AttributionPipeline, WebhookResult

__all__ = ["AttributionPipeline", "WebhookResult"]
