"""
StockTrail — activity reconstruction and alert deduplication for stock items.

  stocktrail.activity      parse audit descriptions, aggregate deltas, bucket periods
  stocktrail.alerts        poll threshold alerts into a deduplicated notification list
  stocktrail.integrations  read-only client for the tracking API
"""

__version__ = "0.1.0"
