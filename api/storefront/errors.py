"""Domain errors raised by services; routers translate them to HTTP responses."""
from __future__ import annotations


class StorefrontError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationFailed(StorefrontError):
    status_code = 400


class MediaStoreError(StorefrontError):
    status_code = 500


class InvalidUrlError(StorefrontError):
    status_code = 400


class ProxyError(StorefrontError):
    """Upstream fetch failed; status_code mirrors the upstream status when known."""
    status_code = 500


class ConflictError(StorefrontError):
    """Referential conflict with a machine-readable ``type`` for the UI."""
    status_code = 400

    def __init__(self, message: str, type_: str, **payload):
        super().__init__(message)
        self.type = type_
        self.payload = payload

    def to_detail(self) -> dict:
        return {"message": self.message, "type": self.type, **self.payload}


class WebhookSignatureError(StorefrontError):
    status_code = 400


class CheckoutError(StorefrontError):
    status_code = 500
