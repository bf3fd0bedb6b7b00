"""
Shared, cross-cutting code for the API.

`core/` holds the small building blocks every feature uses: DB pool wiring,
request-scoped pool propagation, settings, logging and the error taxonomy.
Keep feature-specific SQL and business logic in the feature package
(e.g. `users/`).
"""
