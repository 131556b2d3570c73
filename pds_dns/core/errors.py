class ErrorCode:
    INVALID_DOMAIN = "Invalid domain format"
    INVALID_RECORD_TYPE = "Unsupported record type"
    INVALID_RECORD_NAME = "Invalid record name"
    INVALID_TTL = "TTL must be a non-negative number of seconds"
    INVALID_SERVICE_TYPE = "Unsupported service type"
    DOMAIN_NOT_FOUND = "Domain not found"
    DOMAIN_EXISTS = "Domain already exists"
    RECORD_NOT_FOUND = "Record not found"
    VERIFICATION_NOT_FOUND = "Verification not found"
    INVALID_TOKEN = "Invalid verification token"
    SERVICE_MISMATCH = "Service ID mismatch"
    ALREADY_TERMINAL = "Verification already completed with status"
    LOOKUP_FAILED = "DNS lookup failed"
    INTERNAL = "Internal server error"


class ServiceError(Exception):
    """Base for errors the service layer raises; carries an HTTP-equivalent status."""

    status_code = 500
    detail = ErrorCode.INTERNAL

    def __init__(self, detail: str = None, status_code: int = None):
        self.detail = detail or self.detail
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.detail)


class InvalidDomain(ServiceError):
    status_code = 400
    detail = ErrorCode.INVALID_DOMAIN


class InvalidRecord(ServiceError):
    status_code = 400
    detail = ErrorCode.INVALID_RECORD_TYPE


class NotFound(ServiceError):
    status_code = 404
    detail = ErrorCode.RECORD_NOT_FOUND


class DuplicateDomain(ServiceError):
    status_code = 409
    detail = ErrorCode.DOMAIN_EXISTS


class ServiceMismatch(ServiceError):
    status_code = 403
    detail = ErrorCode.SERVICE_MISMATCH


class AlreadyTerminal(ServiceError):
    status_code = 409
    detail = ErrorCode.ALREADY_TERMINAL

    def __init__(self, status: str):
        self.status = status
        super().__init__(f"{ErrorCode.ALREADY_TERMINAL} '{status}'")


class TransientLookupFailure(ServiceError):
    """Transport-level DNS failure. Consumed by the engine as a missed attempt."""

    status_code = 503
    detail = ErrorCode.LOOKUP_FAILED
