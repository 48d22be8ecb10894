"""Bearer credential handling.

Services:
    - TokenService: issues and verifies HS256 JWT bearer tokens.
    - Authenticator: resolves a bearer token to a directory user.
"""
