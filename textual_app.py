import logging
from typing import Optional

from textual.app import App, ComposeResult
from textual.widgets import (
    Header,
    Footer,
    Button,
    Input,
    Static,
    Log,
    DataTable,
)
from textual.containers import Horizontal, Vertical

from fhir.resources.R4B.bundle import Bundle

import config
from bundle_fetcher import BundleFetcher
from fhir_client import FhirClient, client_from_env
from fhir_errors import FhirServerError, describe
from fhir_search_demo import (
    DEFAULT_FAMILY,
    SPECIFIC_SEARCH,
    family_search,
    patient_display_name,
)

# ---------------------------------------------------------------------------
# Logging configuration
# ---------------------------------------------------------------------------
logging.basicConfig(
    filename=config.FHIR_LOG_FILE,
    level=config.FHIR_LOG_LEVEL,
    format=config.LOG_FORMAT,
    filemode="w",  # Overwrite on each run
)
logger = logging.getLogger(__name__)


class PatientSearchApp(App):
    """A Textual app that searches Patients and shows every page in one table."""

    CSS_PATH = "app.tcss"
    BINDINGS = [("q", "quit", "Quit")]

    def __init__(self, client: Optional[FhirClient] = None) -> None:
        super().__init__()
        self.client = client or client_from_env()

    # ------------------------------------------------------------------
    # Compose the UI
    # ------------------------------------------------------------------
    def compose(self) -> ComposeResult:
        yield Header()

        with Horizontal(id="controls"):
            yield Input(value=DEFAULT_FAMILY, placeholder="Family name", id="family")
            yield Button("Specific search", id="specific")
            yield Button("Search all pages", id="search_all", variant="primary")
            yield Static(f"[yellow]{self.client.base_url}[/yellow]", id="status")

        with Vertical():
            yield DataTable(id="patient_table")
            yield Log(id="log", auto_scroll=True)

        yield Footer()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def on_mount(self) -> None:
        table = self.query_one("#patient_table", DataTable)
        table.add_columns("FHIR ID", "Name", "Gender", "Birth Date")
        table.cursor_type = "row"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _log(self, message: str, level: int = logging.INFO) -> None:
        self.query_one("#log", Log).write_line(message)
        logger.log(level, "%s", message)

    def _set_status(self, text: str, colour: str = "green") -> None:
        self.query_one("#status", Static).update(f"[{colour}]{text}[/{colour}]")

    def _show_patients(self, bundle: Bundle) -> int:
        table = self.query_one("#patient_table", DataTable)
        table.clear()
        shown = 0
        for entry in bundle.entry or []:
            patient = entry.resource
            if patient is None or patient.get_resource_type() != "Patient":
                continue
            table.add_row(
                patient.id,
                patient_display_name(patient),
                patient.gender or "",
                str(patient.birthDate or ""),
            )
            shown += 1
        return shown

    def _show_error(self, exc: FhirServerError) -> None:
        self._set_status("Search failed", "red")
        self._log(f"FHIR request failed: {exc}", logging.ERROR)
        for line in describe(exc):
            self._log(line, logging.ERROR)

    # ------------------------------------------------------------------
    # Searches
    # ------------------------------------------------------------------
    def run_specific_search(self) -> None:
        try:
            bundle = self.client.search("Patient", SPECIFIC_SEARCH)
        except FhirServerError as exc:
            self._show_error(exc)
            return
        shown = self._show_patients(bundle)
        self._set_status(f"{shown} patient(s)")
        self._log(
            f"{bundle.total} patient(s) matched in the very specific search "
            f"and {shown} patient(s) are in this bundle."
        )

    def run_family_search(self, family: str) -> None:
        if not family:
            self._log("Please enter a family name first.", logging.WARNING)
            return
        try:
            first = self.client.search("Patient", family_search(family))
            result = BundleFetcher(self.client, first).fetch_all()
        except FhirServerError as exc:
            self._show_error(exc)
            return

        shown = self._show_patients(result.bundle)
        if result.count_mismatch:
            self._set_status(f"{shown} of {result.total} patient(s)", "yellow")
            self._log(
                f"Counts didn't match! Expected {result.total} resource(s) "
                f"but the bundle only had {len(result.entries)} resource(s)!",
                logging.WARNING,
            )
        else:
            self._set_status(f"{shown} patient(s)")
        self._log(
            f"In the end the search matched {result.total} patient(s) "
            f"and {len(result.entries)} patient(s) are in this aggregate bundle."
        )

    # ------------------------------------------------------------------
    # Event Handlers
    # ------------------------------------------------------------------
    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "specific":
            self.run_specific_search()
        elif event.button.id == "search_all":
            family = self.query_one("#family", Input).value.strip()
            self.run_family_search(family)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.run_family_search(event.value.strip())


if __name__ == "__main__":
    PatientSearchApp().run()
