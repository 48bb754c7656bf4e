"""archgroup – tag-driven grouping of architecture graphs.

Groups leaf artifacts of a property-graph architecture model into level,
module, architecture and custom containers, and keeps named snapshots of
the resulting topology for rollback.
"""

__version__ = "0.1.0"
