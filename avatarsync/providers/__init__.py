from .s3_store import S3ObjectStore

__all__ = ["S3ObjectStore"]
