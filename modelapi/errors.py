# Error reporting
#
# Expected conditions are reported as a Status and a list of error entries:
# [
#     {
#         "error": "No resource found",
#         "message": "No resource found at the path provided or matching the criteria specified",
#         "field": "id"
#     }
# ]
# The exceptions below are only raised by the request glue (resource.py), they're caught
# in http_method_decorator and rendered with the same entries.
#
import traceback
from collections.abc import Mapping
from enum import Enum
from http import HTTPStatus
from sqlalchemy.exc import DontWrapMixin
import modelapi
from .config import is_debug

HIDDEN_LOG = "(debug logging disabled)"
UNSPECIFIED_ERROR = "Unspecified error"
INTERNAL_ERROR_MESSAGE = "An internal server error has occurred while processing your request."


class Status(Enum):
    """
    Outcome of an api operation, the value is the HTTP status used to render it
    """

    OK = HTTPStatus.OK
    BAD_REQUEST = HTTPStatus.BAD_REQUEST
    UNAUTHORIZED = HTTPStatus.UNAUTHORIZED
    NOT_FOUND = HTTPStatus.NOT_FOUND
    INTERNAL_ERROR = HTTPStatus.INTERNAL_SERVER_ERROR
    NOT_IMPLEMENTED = HTTPStatus.NOT_IMPLEMENTED

    @property
    def successful(self) -> bool:
        return self is Status.OK


def _normalize_entry(entry) -> dict:
    if isinstance(entry, Mapping):
        entry = dict(entry)
        if "error" in entry and "message" in entry:
            return entry
        entry.setdefault("error", entry.get("message") or UNSPECIFIED_ERROR)
        entry.setdefault("message", entry.get("error") or UNSPECIFIED_ERROR)
        return entry
    return {"error": str(entry), "message": str(entry)}


def normalize_errors(error, message=None, field=None) -> list:
    """Normalize an error representation into a list of {error, message, field?} entries

    - a list: every element is normalized, mappings keep their keys and get
      the missing error/message filled in from each other, anything else becomes {error: str(e), message: str(e)}
    - a mapping: normalized like a list element
    - anything else: {error: error, message: message or error}

    :param error: string, mapping or list of those
    :param message: message used for a scalar error
    :param field: attached to the first entry only
    :return: list of error dicts
    """
    if isinstance(error, (list, tuple)):
        entries = [_normalize_entry(entry) for entry in error]
    elif isinstance(error, Mapping):
        entries = [_normalize_entry(error)]
    else:
        error = str(error) if error is not None else UNSPECIFIED_ERROR
        entries = [{"error": error, "message": str(message) if message else error}]
    if field is not None and entries:
        entries[0]["field"] = str(field)
    return entries


def unspecified_error(operation) -> dict:
    """
    :param operation: the operation that failed without any details
    :return: error entry
    """
    operation = getattr(operation, "value", operation)
    return {
        "error": UNSPECIFIED_ERROR,
        "message": f"Unspecified error processing {operation}: Please contact customer service for further assistance.",
    }


def bad_payload_message(fmt="json") -> str:
    return f"A properly-formatted {str(fmt).upper()} payload was expected in the HTTP request body but not found"


class ModelAPIError(Exception, DontWrapMixin):
    """
    Base class of the errors that are rendered as a status and an error list
    """

    status = Status.INTERNAL_ERROR
    error = UNSPECIFIED_ERROR
    message = ""

    def __init__(self, message=None, error=None, field=None):
        Exception.__init__(self, message or self.message)
        if message:
            self.message = str(message)
        if error:
            self.error = str(error)
        self.field = field

    @property
    def status_code(self) -> int:
        return self.status.value.value

    @property
    def errors(self) -> list:
        return normalize_errors(self.error, self.message, field=self.field)


class NotFoundError(ModelAPIError):
    """
    This exception is raised when an item was not found, or to mask the presence of an endpoint
    """

    status = Status.NOT_FOUND
    error = "No resource found"
    message = "No resource found at the path provided or matching the criteria specified"

    def __init__(self, message=None, error=None, field=None):
        super().__init__(message, error, field)
        modelapi.log.info(f"Not found: {self.message}")


class UnAuthorizedError(ModelAPIError):
    """
    This exception is raised when the principal lacks a privilege
    """

    status = Status.UNAUTHORIZED
    error = "Not authorized"
    message = "Missing one or more privileges required to complete request"

    def __init__(self, message=None, error=None, field=None):
        super().__init__(message, error, field)
        modelapi.log.error(f"UnAuthorizedError: {self.message}")


class BadPayloadError(ModelAPIError):
    """
    This exception is raised when the request body is missing or malformed
    """

    status = Status.BAD_REQUEST
    error = "Missing/invalid request body (payload)"

    def __init__(self, message=None, error=None, field=None, fmt="json"):
        super().__init__(message or bad_payload_message(fmt), error, field)
        modelapi.log.warning(f"BadPayloadError: {self.message}")


class BadRequestError(ModelAPIError):
    """
    This exception is raised when the request is invalid for the resource in its present state
    """

    status = Status.BAD_REQUEST
    error = "Invalid API request"
    message = "This request is invalid for the resource in its present state"

    def __init__(self, message=None, error=None, field=None):
        super().__init__(message, error, field)
        modelapi.log.warning(f"BadRequestError: {self.message}")


class ValidationError(ModelAPIError):
    """
    This exception is raised when invalid input has been detected (client side input)
    Always send back the message to the client in the response
    """

    status = Status.BAD_REQUEST
    error = "Validation error"

    def __init__(self, message="", error=None, field=None, errors=None):
        super().__init__(message, error, field)
        self._errors = errors
        modelapi.log.warning(f"ValidationError: {message or errors}")

    @property
    def errors(self) -> list:
        if self._errors:
            return normalize_errors(self._errors, field=self.field)
        return super().errors


class NotImplementedAPIError(ModelAPIError):
    status = Status.NOT_IMPLEMENTED
    error = "Not implemented"
    message = "This API feature is presently unavailable"


class GenericError(ModelAPIError):
    """
    This exception is raised when an unclassified error has been detected,
    the details are only sent to the client in debug mode
    """

    status = Status.INTERNAL_ERROR
    error = "Internal server error"

    def __init__(self, message, error=None, field=None):
        modelapi.log.error(f"Generic Error: {message}")
        if is_debug():
            modelapi.log.debug(traceback.format_exc(120))
            message = f"Exception: {message}"
        else:
            message = INTERNAL_ERROR_MESSAGE
        super().__init__(message, error, field)
