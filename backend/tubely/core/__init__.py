"""
Core infrastructure for the Tubely backend.

- auth: Bearer token issue and verification (HS256 JWT)
- database: MongoDB async client with Motor driver and connection pooling
- errors: Ingestion error taxonomy mapped to HTTP status codes
"""
