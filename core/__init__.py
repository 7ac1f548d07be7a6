"""core/ -- Configuration, schema and error taxonomy shared by every other package."""
