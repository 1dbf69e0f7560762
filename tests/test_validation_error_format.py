from core.validation_errors import format_validation_error_details


def test_missing_nested_field_is_listed():
    errors = [
        {"type": "missing", "loc": ("body", "folderManagement"), "msg": "Field required", "input": {}},
        {"type": "missing", "loc": ("body", "files", 0, "s3Key"), "msg": "Field required", "input": {}},
        {"type": "missing", "loc": ("body", "folderManagement"), "msg": "Field required", "input": {}},
    ]

    details = format_validation_error_details(errors)

    assert details["missingFields"] == ["folderManagement", "files.0.s3Key"]
    assert details["summary"] == "Validation failed: missing required field(s): folderManagement, files.0.s3Key."
    assert len(details["fieldErrors"]) == 3


def test_query_errors_keep_their_location():
    errors = [{"type": "greater_than_equal", "loc": ("query", "page"), "msg": "Input should be >= 1"}]

    details = format_validation_error_details(errors)

    assert details["summary"] == "Validation failed for 1 field(s)."
    assert details["fieldErrors"] == [
        {
            "path": "page",
            "location": "query",
            "message": "Input should be >= 1",
            "errorType": "greater_than_equal",
        }
    ]


def test_root_level_error_without_location():
    details = format_validation_error_details([{"type": "json_invalid", "msg": "JSON decode error"}])
    assert details["fieldErrors"][0]["path"] == "(root)"
    assert details["fieldErrors"][0]["location"] == "body"
