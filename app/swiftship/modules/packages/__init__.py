"""
Packages module.

- A Package is identified publicly by its tracking number (immutable, unique)
- Its status history (status_updates) is append-only
- Package.status / current_location always mirror the latest status update written
"""
