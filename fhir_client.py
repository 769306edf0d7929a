# fhir_client.py
import logging
from typing import Optional, Sequence, Union

import requests
from fhir.resources.R4B.bundle import Bundle
from fhir.resources.R4B.operationoutcome import OperationOutcome
from fhirpathpy import evaluate as fhirpath
from pydantic import ValidationError

import config
from bundle_fetcher import next_link
from fhir_errors import FhirClientConnectionError, FhirClientError, FhirServerError

logger = logging.getLogger(__name__)  # Inherits handlers configured by the app

FHIR_JSON = "application/fhir+json"

SearchParams = Union[dict[str, str], Sequence[tuple[str, str]]]
HeaderValues = Union[str, Sequence[str]]

# Server warnings ride along in a searchset as entries with search.mode = outcome
OUTCOME_DIAGNOSTICS = "Bundle.entry.where(search.mode = 'outcome').resource.issue.diagnostics"


def _mask(tok: Optional[str], n: int = 8) -> str:
    return tok[:n] + "…" if tok else "<none>"


def _headers(
    bearer: Optional[str] = None,
    extra: Optional[dict[str, HeaderValues]] = None,
) -> dict[str, str]:
    headers = {"Accept": FHIR_JSON}
    if bearer:
        headers["Authorization"] = f"Bearer {bearer}"
    for name, values in (extra or {}).items():
        headers[name] = values if isinstance(values, str) else ", ".join(values)
    return headers


def _mime_type(response: requests.Response) -> Optional[str]:
    content_type = response.headers.get("Content-Type")
    if not content_type:
        return None
    return content_type.split(";", 1)[0].strip()


def _operation_outcome(body: Optional[dict], notes: list[str]) -> Optional[OperationOutcome]:
    if not isinstance(body, dict) or body.get("resourceType") != "OperationOutcome":
        return None
    try:
        return OperationOutcome.model_validate(body)
    except ValidationError as exc:
        notes.append(f"Response body is not a valid OperationOutcome: {exc}")
        return None


def error_from_response(response: requests.Response) -> FhirServerError:
    """Build a `FhirServerError` out of a non-2xx response."""
    notes: list[str] = []
    try:
        body = response.json()
    except ValueError:
        body = None
    outcome = _operation_outcome(body, notes)

    return FhirServerError(
        f"HTTP {response.status_code} from {response.url}",
        status_code=response.status_code,
        response_mime_type=_mime_type(response),
        response_headers={name: [value] for name, value in response.headers.items()},
        response_body=response.text,
        additional_messages=notes,
        operation_outcome=outcome,
    )


class FhirClient:
    """Thin `requests` wrapper for FHIR search and paging."""

    def __init__(
        self,
        base_url: str,
        bearer_token: Optional[str] = None,
        basic_auth: Optional[tuple[str, str]] = None,
        extra_headers: Optional[dict[str, HeaderValues]] = None,
        timeout: Optional[float] = config.FHIR_TIMEOUT,
        log_traffic: bool = False,
    ) -> None:
        if not base_url:
            raise ValueError(
                "The base URL for the FHIR server must be specified. "
                "For example: https://hapi.fhir.org/baseR4"
            )
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.log_traffic = log_traffic
        self.session = requests.Session()
        self.session.headers.update(_headers(bearer_token, extra_headers))
        if basic_auth:
            self.session.auth = basic_auth

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def search(self, resource_type: str, params: Optional[SearchParams] = None) -> Bundle:
        """GET [base]/<resource_type>?<params> and return the first page."""
        return self._get_bundle(f"{self.base_url}/{resource_type}", params)

    def load_next(self, bundle: Bundle) -> Bundle:
        """Resolve the bundle's 'next' link into the following page."""
        url = next_link(bundle)
        if url is None:
            raise ValueError("The bundle has no 'next' link to load")
        return self._get_bundle(url)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _get_bundle(self, url: str, params: Optional[SearchParams] = None) -> Bundle:
        response = self._get(url, params)
        try:
            data = response.json()
        except ValueError as exc:
            raise FhirClientError(
                f"Response from {response.url} is not JSON",
                status_code=response.status_code,
                response_mime_type=_mime_type(response),
                response_body=response.text,
                additional_messages=[str(exc)],
            ) from exc

        try:
            bundle = Bundle.model_validate(data)
        except ValidationError as exc:
            raise FhirClientError(
                f"Response from {response.url} is not a Bundle",
                status_code=response.status_code,
                response_mime_type=_mime_type(response),
                response_body=response.text,
                additional_messages=[str(exc)],
            ) from exc

        for warning in fhirpath(data, OUTCOME_DIAGNOSTICS):
            logger.warning("Server warning for %s: %s", response.url, warning)

        return bundle

    def _get(self, url: str, params: Optional[SearchParams] = None) -> requests.Response:
        if self.log_traffic:
            logger.info("FHIR GET %s params=%s", url, params)
            for name, value in self.session.headers.items():
                if name.lower() == "authorization":
                    value = _mask(value.split(" ", 1)[-1])
                logger.info("Request header %s: %s", name, value)
        else:
            logger.debug("FHIR GET %s params=%s", url, params)

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise FhirClientConnectionError(
                f"Failed to reach {url}",
                additional_messages=[str(exc)],
            ) from exc

        if self.log_traffic:
            logger.info("FHIR response status: %s", response.status_code)
            logger.info("FHIR response body: %s", response.text)
        else:
            logger.debug("FHIR response status: %s", response.status_code)

        if not response.ok:
            logger.error(
                "FHIR request failed (%s): %s", response.status_code, response.text[:300]
            )
            raise error_from_response(response)
        return response


def client_from_env(base_url: Optional[str] = None) -> FhirClient:
    """Build a `FhirClient` from the settings in `config`."""
    return FhirClient(
        base_url or config.FHIR_BASE,
        bearer_token=config.FHIR_BEARER_TOKEN,
        basic_auth=config.basic_auth(),
        extra_headers=config.parse_extra_headers(config.FHIR_EXTRA_HEADERS),
        timeout=config.FHIR_TIMEOUT,
        log_traffic=config.env_flag(config.FHIR_LOG_TRAFFIC),
    )
