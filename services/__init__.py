"""Uplink Monitor services.

- rate limiting and identity providers (public IP + ISP lookups)
- identity resolution with caching and fallback
- ISP change detection and gateway probing
- metrics aggregation, the sampling loop and subscriber push
"""
