# config.py
"""Environment-driven settings for the FHIR search demo.

Values come from the process environment, with a `.env` file (found by
walking up from the working directory) loaded first.
"""

from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv, find_dotenv

load_dotenv(find_dotenv())

# ---------------------------------------------------------------------------
# Config – env‑override friendly
# ---------------------------------------------------------------------------
FHIR_BASE           = os.getenv("FHIR_BASE", "https://hapi.fhir.org/baseR4")
FHIR_BEARER_TOKEN   = os.getenv("FHIR_BEARER_TOKEN")
FHIR_BASIC_USER     = os.getenv("FHIR_BASIC_USER")
FHIR_BASIC_PASSWORD = os.getenv("FHIR_BASIC_PASSWORD")
FHIR_EXTRA_HEADERS  = os.getenv("FHIR_EXTRA_HEADERS", "")
FHIR_TIMEOUT        = float(os.getenv("FHIR_TIMEOUT", "30"))
FHIR_LOG_TRAFFIC    = os.getenv("FHIR_LOG_TRAFFIC", "")
FHIR_LOG_LEVEL      = os.getenv("FHIR_LOG_LEVEL", "INFO")
FHIR_LOG_FILE       = os.getenv("FHIR_LOG_FILE", "fhir_search.log")

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def env_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}


def parse_extra_headers(text: str) -> dict[str, list[str]]:
    """Parse `Name=value1,value2;Other=value` into a header -> values mapping.

    Blank segments and segments without `=` are ignored. Repeating a name adds
    to its values.
    """
    headers: dict[str, list[str]] = {}
    for segment in (text or "").split(";"):
        if "=" not in segment:
            continue
        name, raw_values = segment.split("=", 1)
        name = name.strip()
        if not name:
            continue
        values = [v.strip() for v in raw_values.split(",") if v.strip()]
        headers.setdefault(name, []).extend(values)
    return headers


def basic_auth() -> Optional[tuple[str, str]]:
    if FHIR_BASIC_USER:
        return FHIR_BASIC_USER, FHIR_BASIC_PASSWORD or ""
    return None
