class OtpError(RuntimeError):
    pass


class InvalidRequest(OtpError, ValueError):
    pass


class PersistenceError(OtpError):
    pass


class DeliveryError(OtpError):
    pass


class RateLimited(OtpError):
    pass


class IssueFailed(OtpError):
    pass


class VerifyFailed(OtpError):
    pass
