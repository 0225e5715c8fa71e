"""
Price Source Connectors Package

This package contains individual price source connector modules.
Each source (oracle, DexScreener, CoinGecko) has its own subfolder with:
- api_client.py: HTTP methods and one decoder per vendor payload
- __init__.py: Connector class implementing PriceSourceInterface

The modular design allows adding new sources without modifying the orchestrator.
"""
