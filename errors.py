class ServiceError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_body(self) -> dict:
        return {"error": self.message}


class ReviewValidationError(ServiceError):
    status_code = 400

    def __init__(self, message: str = "Review text is required"):
        super().__init__(message)


class QuotaExceeded(ServiceError):
    status_code = 429

    def __init__(self, message: str, limit: int, used: int):
        super().__init__(message)
        self.limit = limit
        self.used = used

    def to_body(self) -> dict:
        return {"error": self.message, "limitReached": True}


class UpstreamProviderError(ServiceError):
    status_code = 500

    def __init__(self, message: str = "Failed to generate response"):
        super().__init__(message)


class WebhookVerificationError(ServiceError):
    status_code = 400

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message)


class NotAuthenticated(ServiceError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class NotFound(ServiceError):
    status_code = 404

    def __init__(self, message: str = "Not found"):
        super().__init__(message)


class BillingAccountMissing(ServiceError):
    status_code = 400

    def __init__(self, message: str = "No billing account found"):
        super().__init__(message)
