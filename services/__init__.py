"""
Services Package

Long-lived application services built on the core layer:
- TokenPriceService: Resolution, fallback pricing, batching, caching and PnL
- PriceStreamManager: Polling price streams for WebSocket clients
"""
