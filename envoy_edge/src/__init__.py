"""
Edge daemon package for the Envoy-to-energy-bus pipeline.

Polls the local REST API of an Enphase IQ Gateway (Envoy), normalizes its
firmware-dependent JSON into the vendor-neutral ``com.maxence.energy.v1``
schema, persists the last envelope locally, and forwards it downstream.

CHANGELOG:
- 2026-10-02: Initial creation (STORY-001)

TODO:
- None
"""
