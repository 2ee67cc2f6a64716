"""ChoreMint points ledger and goal progression service."""

__version__ = '0.1.0'
