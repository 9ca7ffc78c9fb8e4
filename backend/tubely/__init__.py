"""
Tubely Backend Application Package

FastAPI service that ingests video and thumbnail uploads for video records:
uploads are staged under a size ceiling, probed with ffprobe, remuxed for fast
start with ffmpeg, published to S3-compatible storage under random keys, and
their URLs committed to the owning record in MongoDB.

Package Structure:
- api/: REST API endpoints organized by version (v1)
- core/: Core infrastructure (database, auth, error taxonomy)
- models/: Pydantic data models
- services/: Ingestion pipeline stages and orchestration
- utils/: Logging and async helpers
"""

__version__ = "1.0.0"
__app_name__ = "tubely"
