"""Tests for FHIR error diagnostics."""

import logging

from fhir.resources.R4B.operationoutcome import OperationOutcome, OperationOutcomeIssue

from fhir_errors import (
    GENERIC_ERROR_MESSAGE,
    FhirClientConnectionError,
    FhirServerError,
    describe,
    message_for,
    messages_from_outcome,
    report,
)


def issue_json(details_text=None, diagnostics=None) -> dict:
    data = {"severity": "error", "code": "processing"}
    if details_text is not None:
        data["details"] = {"text": details_text}
    if diagnostics is not None:
        data["diagnostics"] = diagnostics
    return data


def issue(details_text=None, diagnostics=None) -> OperationOutcomeIssue:
    return OperationOutcomeIssue.model_validate(issue_json(details_text, diagnostics))


def outcome(*issues: dict) -> OperationOutcome:
    return OperationOutcome.model_validate({"resourceType": "OperationOutcome", "issue": list(issues)})


ABSENT_LINES = [
    "The exception did not have an HTTP status code",
    "The exception did not have a response mime type",
    "The exception did not have any response headers",
    "The exception did not have a response body",
    "The exception did not have any additional messages",
    "The exception did not have an operation outcome",
]


# ---------------------------------------------------------------------------
# message_for
# ---------------------------------------------------------------------------

def test_details_text_wins_over_diagnostics():
    assert message_for(issue("Patient not found", "HAPI-2001: no match")) == "Patient not found"


def test_diagnostics_used_without_details_text():
    assert message_for(issue(diagnostics="HAPI-2001: no match")) == "HAPI-2001: no match"


def test_generic_message_when_neither_is_present():
    assert message_for(issue()) == GENERIC_ERROR_MESSAGE
    assert GENERIC_ERROR_MESSAGE == "An unexpected error occurred."


def test_details_without_text_falls_through():
    no_text = OperationOutcomeIssue.model_validate(
        {
            "severity": "error",
            "code": "processing",
            "details": {"coding": [{"system": "http://example.org/codes", "code": "X1"}]},
            "diagnostics": "from diagnostics",
        }
    )
    assert message_for(no_text) == "from diagnostics"


def test_messages_from_outcome_keeps_issue_order():
    oo = outcome(issue_json("first"), issue_json(diagnostics="second"), issue_json())
    assert messages_from_outcome(oo) == ["first", "second", GENERIC_ERROR_MESSAGE]


# ---------------------------------------------------------------------------
# describe
# ---------------------------------------------------------------------------

def test_empty_error_gives_one_absent_line_per_field():
    assert describe(FhirServerError("nothing known")) == ABSENT_LINES


def test_connection_error_without_response_is_described():
    error = FhirClientConnectionError("refused", additional_messages=["Connection refused"])

    lines = describe(error)

    assert lines[0] == "The exception did not have an HTTP status code"
    assert "Additional messages from the exception:" in lines
    assert "Connection refused" in lines


def test_status_code_zero_counts_as_absent():
    assert describe(FhirServerError("x", status_code=0))[0] == ABSENT_LINES[0]


def test_empty_headers_and_messages_count_as_absent():
    lines = describe(FhirServerError("x", response_headers={}, additional_messages=[]))

    assert lines == ABSENT_LINES


def test_full_error_is_described_in_order():
    error = FhirServerError(
        "HTTP 404",
        status_code=404,
        response_mime_type="application/fhir+json",
        response_headers={"Content-Type": ["application/fhir+json"], "X-Request-Id": ["a", "b"]},
        response_body='{"resourceType": "OperationOutcome"}',
        additional_messages=["retry later"],
        operation_outcome=outcome(
            issue_json("Resource Patient/9 is not known"), issue_json(diagnostics="HAPI-0971")
        ),
    )

    assert describe(error) == [
        "HTTP status code from exception: 404",
        "Response mime type from the exception: application/fhir+json",
        "Response headers from the exception:",
        'Header: "Content-Type"   Value: "application/fhir+json"',
        'Header: "X-Request-Id"   Value: "a"',
        'Header: "X-Request-Id"   Value: "b"',
        'Response body from the exception: {"resourceType": "OperationOutcome"}',
        "Additional messages from the exception:",
        "retry later",
        "Here are the error messages from each of the operation outcome issues:",
        "Resource Patient/9 is not known",
        "HAPI-0971",
    ]


def test_empty_body_is_reported_as_present():
    lines = describe(FhirServerError("x", response_body=""))
    assert "Response body from the exception: " in lines


# ---------------------------------------------------------------------------
# report
# ---------------------------------------------------------------------------

def test_report_logs_every_line(caplog):
    error = FhirServerError("HTTP 500", status_code=500)
    log = logging.getLogger("test_report")

    with caplog.at_level(logging.ERROR, logger="test_report"):
        lines = report(error, log)

    messages = [record.getMessage() for record in caplog.records]
    assert messages[0] == "A FHIR exception occurred!"
    assert messages[1:] == lines
    assert lines[0] == "HTTP status code from exception: 500"
    assert all(record.levelno == logging.ERROR for record in caplog.records)
