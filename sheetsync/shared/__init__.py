"""
Shared building blocks used by all features.

Modules:
- errors: provider error taxonomy and reauth detection
- tokens: per-client OAuth token cache
- formatters: spreadsheet cell formatting
- retry: exponential backoff for startup checks
- repository: async CRUD base for feature repositories
"""
