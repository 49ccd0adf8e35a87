"""
Integration clients.

Usage:
    from stocktrail.integrations.tracking_api import TrackingApiClient

    client = TrackingApiClient.from_settings()
    records = await client.fetch_tracking(entity_id=42, limit=200)
"""
