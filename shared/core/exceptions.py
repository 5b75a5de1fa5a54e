from shared.utils.app_status_code import AppStatusCode


class AppException(Exception):
    """Typed, caller-facing failure carrying its status codes.

    ``retryable`` tells the caller whether resubmitting the same request
    (after refetching) can succeed.
    """
    status_code: str = AppStatusCode.OPERATION_FAILED
    http_status: int = 400
    retryable: bool = False

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        return self.message
