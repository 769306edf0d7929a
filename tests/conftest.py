import pytest

from fhir_fixtures import BASE_URL, make_bundle


@pytest.fixture
def pages():
    """Three linked pages: A,B -> C,D -> E, total 5."""
    return [
        make_bundle(["A", "B"], total=5, next_url=f"{BASE_URL}?_getpages=x&_offset=2"),
        make_bundle(["C", "D"], total=5, next_url=f"{BASE_URL}?_getpages=x&_offset=4"),
        make_bundle(["E"], total=5),
    ]
