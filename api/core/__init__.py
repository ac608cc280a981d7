"""
Shared, cross-cutting code for the API.

`core/` holds small building blocks the feature packages use (DB wiring,
object-storage client). Keep feature-specific SQL and business logic in the
corresponding feature package (e.g. `cards/`).
"""
