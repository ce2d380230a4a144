from .redact import mask_presigned_url, mask_presigned_urls_in_text, redact

__all__ = [
    "mask_presigned_url",
    "mask_presigned_urls_in_text",
    "redact",
]
