"""Cache layer for kubevent.

Bounds the rate of involved-object reads against the Kubernetes API.

Submodules:
    lookup          -- ObjectLookup capability and the dynamic-client implementation.
    metadata_cache  -- LRU cache of labels, annotations, owner references and deletion state.
"""

from kubevent.cache.lookup import DynamicObjectLookup, ObjectLookup
from kubevent.cache.metadata_cache import ObjectMetadataCache

__all__ = ["DynamicObjectLookup", "ObjectLookup", "ObjectMetadataCache"]
