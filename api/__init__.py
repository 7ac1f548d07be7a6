"""api/ -- FastAPI HTTP surface for LanguageBot."""
