"""
Bearer token verification. Tokens are issued by the external auth service.
"""
