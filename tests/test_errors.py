from http import HTTPStatus

import pytest
import modelapi.errors as errors_mod
from modelapi.errors import (
    INTERNAL_ERROR_MESSAGE,
    BadPayloadError,
    GenericError,
    NotFoundError,
    Status,
    ValidationError,
    normalize_errors,
    unspecified_error,
)


def test_normalize_scalar_error() -> None:
    assert normalize_errors("Invalid name") == [{"error": "Invalid name", "message": "Invalid name"}]
    assert normalize_errors("Invalid name", "Name is too long", field="name") == [
        {"error": "Invalid name", "message": "Name is too long", "field": "name"}
    ]


def test_normalize_mapping_fills_missing_keys() -> None:
    assert normalize_errors({"message": "Too long"}) == [{"message": "Too long", "error": "Too long"}]
    assert normalize_errors({"error": "Too long"}) == [{"error": "Too long", "message": "Too long"}]
    assert normalize_errors({"code": 12}) == [{"code": 12, "error": "Unspecified error", "message": "Unspecified error"}]


def test_normalize_list_sets_field_on_first_entry_only() -> None:
    result = normalize_errors(["first", {"error": "second", "message": "2nd"}], field="price")
    assert result == [
        {"error": "first", "message": "first", "field": "price"},
        {"error": "second", "message": "2nd"},
    ]


def test_unspecified_error_names_the_operation() -> None:
    entry = unspecified_error("destroy")
    assert entry["error"] == "Unspecified error"
    assert entry["message"].startswith("Unspecified error processing destroy:")


def test_exception_statuses() -> None:
    exc = NotFoundError(field="id")
    assert exc.status is Status.NOT_FOUND
    assert exc.status_code == HTTPStatus.NOT_FOUND
    assert exc.errors == [{"error": "No resource found", "message": NotFoundError.message, "field": "id"}]

    exc = BadPayloadError(fmt="yaml")
    assert exc.status_code == HTTPStatus.BAD_REQUEST
    assert "YAML payload" in exc.message


def test_validation_error_keeps_entries() -> None:
    exc = ValidationError(errors=[{"error": "Invalid value", "message": "bad", "field": "price"}])
    assert exc.errors == [{"error": "Invalid value", "message": "bad", "field": "price"}]
    with pytest.raises(ValidationError) as exc_info:
        raise ValidationError("Invalid price")
    assert exc_info.value.message == "Invalid price"


def test_generic_error_hides_details_unless_debug(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(errors_mod, "is_debug", lambda: False)
    assert GenericError("db exploded").message == INTERNAL_ERROR_MESSAGE

    monkeypatch.setattr(errors_mod, "is_debug", lambda: True)
    exc = GenericError("db exploded")
    assert exc.message == "Exception: db exploded"
    assert exc.status_code == HTTPStatus.INTERNAL_SERVER_ERROR


def test_status_successful() -> None:
    assert Status.OK.successful
    assert not Status.BAD_REQUEST.successful
    assert Status.INTERNAL_ERROR.value == HTTPStatus.INTERNAL_SERVER_ERROR
