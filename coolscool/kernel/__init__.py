"""
Kernel: persistence models, curriculum read API, event log and identity.
"""
