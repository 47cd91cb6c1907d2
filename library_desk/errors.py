# Error kinds raised by the lending workflow, each with its HTTP status and code


class LibraryError(Exception):
    status_code = 400
    code = "error"
    default_message = "Request could not be completed."

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(LibraryError):
    status_code = 404
    code = "not_found"
    default_message = "Not found."


class InvalidStateError(LibraryError):
    status_code = 409
    code = "invalid_state"
    default_message = "Operation is not valid in the current state."


class AvailabilityError(LibraryError):
    status_code = 409
    code = "not_available"
    default_message = "Book is not available."


class DuplicateRequestError(LibraryError):
    status_code = 409
    code = "duplicate_request"
    default_message = "You already have a pending request for this book."


class AuthorizationError(LibraryError):
    status_code = 403
    code = "forbidden"
    default_message = "You are not allowed to do that."


class TransientError(LibraryError):
    """Network or database hiccup. Only safe to retry for reads."""
    status_code = 503
    code = "transient"
    default_message = "The service is temporarily unavailable. Please try again."


class AccountExistsError(LibraryError):
    status_code = 400
    code = "account_exists"
    default_message = "Username or email already registered."
