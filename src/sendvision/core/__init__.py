"""Core domain package for sendvision.

Core contains the filtered store, aggregation and workflow actions without
any storage-specific code; sources plug in through the ports module.
"""
