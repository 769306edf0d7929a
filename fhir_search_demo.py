"""fhir_search_demo.py – command-line Patient search against a FHIR server.

Usage:
    python fhir_search_demo.py [BASE_URL] [FAMILY_NAME]

BASE_URL falls back to $FHIR_BASE. Runs a narrow search on several criteria,
then a family-name search whose pages are all gathered into one bundle.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

from fhir.resources.R4B.bundle import Bundle, BundleEntry

import config
from bundle_fetcher import BundleFetcher
from fhir_client import FhirClient, client_from_env
from fhir_errors import FhirServerError, report

logger = logging.getLogger("fhir_search_demo")

DEFAULT_FAMILY = "Melonseed"

# GET [base]/Patient?_id=010&family=Bond&given=James
SPECIFIC_SEARCH = [
    ("_id", "010"),
    ("family", "Bond"),
    ("given", "James"),
]


def family_search(family: str) -> list[tuple[str, str]]:
    # :exact instead of the default starts-with string match
    return [("family:exact", family)]


def patient_id(entry: BundleEntry) -> Optional[str]:
    resource = entry.resource
    if resource is None or resource.get_resource_type() != "Patient":
        return None
    return resource.id


def patient_display_name(patient) -> str:
    """Return a human‑readable display name for a Patient resource."""
    name = getattr(patient, "name", None)
    if name:
        parts: list[str] = []
        if name[0].given:
            parts.extend(name[0].given)
        if name[0].family:
            parts.append(name[0].family)
        if parts:
            return " ".join(parts)
    return "(no name)"


def log_patient_ids(bundle: Bundle, label: str) -> None:
    for entry in bundle.entry or []:
        pid = patient_id(entry)
        if pid is not None:
            logger.info("ID of found patient%s is %s", label, pid)


def run(client: FhirClient, family: str = DEFAULT_FAMILY) -> None:
    specific = client.search("Patient", SPECIFIC_SEARCH)
    logger.info(
        "%s patient(s) matched in the very specific search and %d patient(s) are in this bundle.",
        specific.total,
        len(specific.entry or []),
    )
    log_patient_ids(specific, " in the very specific search")

    first = client.search("Patient", family_search(family))
    result = BundleFetcher(client, first).fetch_all()
    logger.info(
        "In the end the search matched %s patient(s) and %d patient(s) are in this aggregate bundle.",
        result.total,
        len(result.entries),
    )
    log_patient_ids(result.bundle, "")


def main(argv: Optional[list[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    base_url = args[0] if args else config.FHIR_BASE
    if not base_url:
        raise RuntimeError(
            "The base URL for the FHIR server must be specified as an argument or via FHIR_BASE. "
            "For example: https://hapi.fhir.org/baseR4"
        )
    family = args[1] if len(args) > 1 else DEFAULT_FAMILY
    logger.debug("Base URL is %s", base_url)

    try:
        run(client_from_env(base_url), family)
    except FhirServerError as exc:
        report(exc, logger)
        return 1
    except Exception:
        logger.exception("Something really bad happened!")
        return 2
    return 0


def cli() -> int:
    logging.basicConfig(
        level=config.FHIR_LOG_LEVEL,
        format=config.LOG_FORMAT,
    )
    return main()


if __name__ == "__main__":
    sys.exit(cli())
