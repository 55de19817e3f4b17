"""
Domain orchestration for the Sentinel gateway.

The admission pipeline ties identity, policy, rate limiting, secret
injection and forwarding together for each proxy request.
"""

from .pipeline import AdmissionPipeline

__all__ = [
    "AdmissionPipeline",
]
