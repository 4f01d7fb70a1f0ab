import pytest

import shift_finder_app
from shift_finder_app import ScheduleStore

SAMPLE_SHEET = "\n".join([
    "date,Downtown-Morning,Uptown-Night,Warehouse",
    "2024-03-05,Ana,—,Bob",
    "2024-03-01,Bob,Ana,off",
    "not a date,Ana,Ana,Ana",
    "2024-03-02,вых,-,Ана",
])


@pytest.fixture()
def sample_sheet() -> str:
    return SAMPLE_SHEET


@pytest.fixture()
def store(monkeypatch):
    store = ScheduleStore(loader=lambda: SAMPLE_SHEET)
    monkeypatch.setattr(shift_finder_app, "schedule_store", store)
    return store


@pytest.fixture()
def client(monkeypatch, store):
    monkeypatch.setitem(shift_finder_app.app.config, "ACCESS_CODE", "")
    monkeypatch.setitem(shift_finder_app.app.config, "TESTING", True)
    return shift_finder_app.app.test_client()
