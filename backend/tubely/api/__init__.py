"""
Tubely API Package.

Package Structure:
    - v1/: Version 1 API endpoints
        - upload.py: Video and thumbnail upload endpoints
        - thumbnails.py: In-memory thumbnail retrieval

All endpoints are versioned under the /api/v1 URL prefix.
"""
