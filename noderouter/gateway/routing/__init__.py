"""
Gateway routing package.

This package contains the service classifier and the URL rewrite strategy
engine used when resolving outbound requests.
"""

from .classifier import ServiceClassifier, HostPattern
from .rewrite import RewriteStrategyEngine

__all__ = [
    "ServiceClassifier",
    "HostPattern",
    "RewriteStrategyEngine"
]
