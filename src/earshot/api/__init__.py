"""API module for Earshot.

Thin HTTP layer over the domain:
- Validates inputs, reads/writes DB through the eval and aggregation modules
- Maps domain errors to HTTP status codes
- Forbidden: metric computation, sampling logic
"""
