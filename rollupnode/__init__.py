"""Building blocks for an optimistic rollup node and L2 output submitter."""

__version__ = "0.1.0"