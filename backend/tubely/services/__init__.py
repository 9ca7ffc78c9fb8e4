"""
Services package for the Tubely backend.

- staging: Chunked, size-limited staging of upload streams
- media_probe: ffprobe inspection and orientation classification
- media_transform: ffmpeg fast-start remuxing and MP4 box inspection
- key_deriver: Random, content-type-derived storage keys
- storage_service: S3-compatible object publishing
- thumbnail_store: Local filesystem and in-memory thumbnail stores
- video_store: Video record reads and owner-scoped commits
- ingestion_service: Orchestration of the whole pipeline
"""
