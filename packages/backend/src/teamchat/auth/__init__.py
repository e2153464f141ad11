"""Authentication.

Sessions are owned by an external provider; this package verifies the
provider's Bearer JWTs and resolves them to a CurrentIdentity.
"""
