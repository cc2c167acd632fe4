"""
Core infrastructure services for the Tubely backend application.

This package contains the foundational infrastructure components:
- auth: Bearer JWT extraction, validation and issuing
- database: Video record store (MongoDB via Motor, or in-memory)
- storage: S3-compatible object storage client and presigned URL issuing
- errors: Error taxonomy shared by the upload pipeline and the HTTP layer
"""
