"""Shared Kernel.

Value objects used both by the Authorization bounded context and by the
process-level infrastructure. Currently this is only the observation
context that probes bind to request-scoped log metadata.
"""
