"""borrowkit: borrow lifecycle and realtime views for a peer-to-peer lending marketplace."""

__version__ = "0.1.0"
