"""zkgate — model commitment registry, pluggable proof verification and layered call guards."""

__version__ = "0.1.0"
