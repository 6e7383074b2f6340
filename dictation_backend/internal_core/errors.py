from __future__ import annotations


class ProtocolError(RuntimeError):
    status_code = 500

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class ValidationError(ProtocolError):
    status_code = 400

    def __init__(self, message: str, code: str = "validation_error"):
        super().__init__(code, message)


class NotFoundError(ProtocolError):
    status_code = 404

    def __init__(self, message: str, code: str = "not_found"):
        super().__init__(code, message)


class PayloadTooLargeError(ProtocolError):
    status_code = 413

    def __init__(self, message: str, code: str = "payload_too_large"):
        super().__init__(code, message)


class InternalError(ProtocolError):
    status_code = 500

    def __init__(self, detail: str, code: str = "internal_error"):
        # Callers only ever see the generic message; detail stays in logs.
        super().__init__(code, "Internal server error")
        self.detail = detail
