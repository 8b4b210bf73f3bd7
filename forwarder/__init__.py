"""Pandora metrics forwarder.

Relays batches of time-series metrics to the Pandora pipeline / TSDB
backends and provisions missing backend objects on demand.
"""

__version__ = '0.3.0'
