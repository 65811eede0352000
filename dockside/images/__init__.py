"""
Ready-made descriptors for commonly used images.

Each factory returns a plain Image, so callers can keep customising it:

    image = mongo().with_tag("6.0").with_exposed_port(27017)
"""
from dockside.images.mongo import mongo
from dockside.images.parity import parity_ethereum

__all__ = ["mongo", "parity_ethereum"]
