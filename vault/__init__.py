"""vault/ -- Encrypted-at-rest storage for user upstream API keys.

Layer rule: vault/ imports only core/ plus third-party libraries.
"""
