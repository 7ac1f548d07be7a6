"""auth/ -- Identity verification and session handling for LanguageBot.

Layer rule: auth/ imports only core/ plus third-party libraries.
It does NOT import from api/, vault/, gateway/, or practice/.
api/ imports from auth/, not the other way around.
"""
