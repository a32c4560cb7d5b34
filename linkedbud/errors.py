# linkedbud/errors.py
"""Error taxonomy shared by services and routers.

Every error carries the message that is safe to show the end user and the HTTP
status the API answers with. Upstream failures keep their detail out of the
public message; callers log the detail before raising.
"""


class LinkedbudError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class AuthenticationError(LinkedbudError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class AuthorizationError(LinkedbudError):
    status_code = 403


class InvalidRequestError(LinkedbudError):
    status_code = 400


class NotFoundError(LinkedbudError):
    status_code = 404


class UpstreamError(LinkedbudError):
    status_code = 500


class ConfigurationError(LinkedbudError):
    status_code = 500
