"""fhir_errors.py – exceptions raised by the FHIR client and the helpers that
turn them into log-friendly diagnostic lines.

`FhirServerError` carries whatever the server (or the client, when the request
never got an answer) told us. Every field is optional; `describe()` walks them
in a fixed order and emits an explicit "did not have …" line for each missing
one, so the output is never empty and the helper never raises.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from fhir.resources.R4B.operationoutcome import OperationOutcome, OperationOutcomeIssue

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred."


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class FhirServerError(Exception):
    """A failed FHIR interaction, with the response details we could collect."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        response_mime_type: Optional[str] = None,
        response_headers: Optional[dict[str, list[str]]] = None,
        response_body: Optional[str] = None,
        additional_messages: Optional[list[str]] = None,
        operation_outcome: Optional[OperationOutcome] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_mime_type = response_mime_type
        self.response_headers = response_headers
        self.response_body = response_body
        self.additional_messages = additional_messages
        self.operation_outcome = operation_outcome


class FhirClientConnectionError(FhirServerError):
    """The request never produced an HTTP response (DNS, refused, timeout …)."""


class FhirClientError(FhirServerError):
    """The server answered 2xx but the payload could not be used."""


# ---------------------------------------------------------------------------
# OperationOutcome issues
# ---------------------------------------------------------------------------

def _details_text(issue: OperationOutcomeIssue) -> Optional[str]:
    details = issue.details
    if details is not None and details.text:
        return details.text
    return None


def _diagnostics(issue: OperationOutcomeIssue) -> Optional[str]:
    return issue.diagnostics or None


# Tried in order; the first extractor returning a value wins.
ISSUE_MESSAGE_EXTRACTORS: list[Callable[[OperationOutcomeIssue], Optional[str]]] = [
    _details_text,
    _diagnostics,
]


def message_for(issue: OperationOutcomeIssue) -> str:
    """Human-readable message for one issue.

    Uses `issue.details.text`, then `issue.diagnostics`, then
    `GENERIC_ERROR_MESSAGE`.
    """
    for extract in ISSUE_MESSAGE_EXTRACTORS:
        message = extract(issue)
        if message is not None:
            return message
    return GENERIC_ERROR_MESSAGE


def messages_from_outcome(outcome: OperationOutcome) -> list[str]:
    return [message_for(issue) for issue in outcome.issue or []]


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------

def describe(error: FhirServerError) -> list[str]:
    """Return diagnostic lines for *error*, one block per field, in a fixed order."""
    lines: list[str] = []

    if error.status_code:
        lines.append(f"HTTP status code from exception: {error.status_code}")
    else:
        lines.append("The exception did not have an HTTP status code")

    if error.response_mime_type is not None:
        lines.append(f"Response mime type from the exception: {error.response_mime_type}")
    else:
        lines.append("The exception did not have a response mime type")

    if error.response_headers:
        lines.append("Response headers from the exception:")
        for name, values in error.response_headers.items():
            for value in values:
                lines.append(f'Header: "{name}"   Value: "{value}"')
    else:
        lines.append("The exception did not have any response headers")

    if error.response_body is not None:
        lines.append(f"Response body from the exception: {error.response_body}")
    else:
        lines.append("The exception did not have a response body")

    if error.additional_messages:
        lines.append("Additional messages from the exception:")
        lines.extend(error.additional_messages)
    else:
        lines.append("The exception did not have any additional messages")

    if error.operation_outcome is not None:
        messages = messages_from_outcome(error.operation_outcome)
        if messages:
            lines.append("Here are the error messages from each of the operation outcome issues:")
            lines.extend(messages)
    else:
        lines.append("The exception did not have an operation outcome")

    return lines


def report(error: FhirServerError, log: logging.Logger = logger) -> list[str]:
    """Log *error* and its diagnostic lines at ERROR; returns the lines."""
    log.error("A FHIR exception occurred!", exc_info=error)
    lines = describe(error)
    for line in lines:
        log.error("%s", line)
    return lines
