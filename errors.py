"""Error taxonomy shared by the resolution, analytics and cleanup paths.

Each error carries the HTTP status it maps to and a short message that is safe
to show to clients.
"""


class QRServiceError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message=None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class InvalidRequest(QRServiceError):
    status_code = 400
    message = "Invalid request"


class NotFound(QRServiceError):
    status_code = 404
    message = "QR Code not found"


class Gone(QRServiceError):
    status_code = 410
    message = "QR Code is inactive"


class Unprocessable(QRServiceError):
    status_code = 500
    message = "QR Code destination not configured"


class Forbidden(QRServiceError):
    status_code = 403
    message = "Access denied"


class UpstreamTimeout(QRServiceError):
    """Geolocation lookup failed or timed out; recovered inside GeoEnricher."""
    status_code = 504
    message = "Geolocation lookup timed out"


class StoreWriteFailure(QRServiceError):
    message = "Store write failed"


class BatchCommitFailure(QRServiceError):
    message = "Cleanup failed"


class DocumentNotFound(QRServiceError):
    """An in-place update targeted a document that no longer exists."""
    status_code = 404
    message = "Document not found"
