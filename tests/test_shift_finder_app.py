import io

import pandas as pd

import shift_finder_app
from sheet_fetcher import SheetFetchError, SheetFormatError
from shift_finder_app import FETCH_ERROR_MESSAGE, HTML_ERROR_MESSAGE, ScheduleStore


def test_index_lists_names_and_total(client):
    resp = client.get("/")
    assert resp.status_code == 200
    body = resp.get_data(as_text=True)
    assert '<option value="Ana">Ana</option>' in body
    assert '<option value="Ана">Ана</option>' in body
    assert "Total: 5 Shifts" in body


def test_shifts_page_is_sorted_by_date(client):
    resp = client.get("/shifts", query_string={"name": "Ana"})
    assert resp.status_code == 200
    body = resp.get_data(as_text=True)
    assert body.index("2024-03-01") < body.index("2024-03-05")
    assert "Uptown" in body
    assert "Downtown" in body
    assert "пятница" in body  # 2024-03-01


def test_unknown_name_shows_empty_schedule(client):
    resp = client.get("/shifts", query_string={"name": "Nobody"})
    assert resp.status_code == 200
    assert "График пуст" in resp.get_data(as_text=True)


def test_shifts_without_name_redirects_home(client):
    resp = client.get("/shifts")
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/")


def test_api_shifts_json(client):
    data = client.get("/api/shifts", query_string={"name": "Bob"}).get_json()
    assert data["names"] == ["Ana", "Bob", "Ана"]
    assert data["total"] == 5
    assert data["error"] == ""
    assert data["shifts"] == [
        {"employee_name": "Bob", "date": "2024-03-01", "store": "Downtown", "shift_time": "Morning"},
        {"employee_name": "Bob", "date": "2024-03-05", "store": "Warehouse", "shift_time": "Смена"},
    ]


def test_api_without_name_returns_no_shifts(client):
    data = client.get("/api/shifts").get_json()
    assert data["shifts"] == []


def test_download_returns_workbook(client):
    resp = client.get("/download", query_string={"name": "Ana"})
    assert resp.status_code == 200
    assert resp.mimetype == shift_finder_app.XLSX_MIMETYPE
    df = pd.read_excel(io.BytesIO(resp.data), sheet_name="Shifts")
    assert list(df.columns) == ["Employee", "Date", "Weekday", "Store", "Shift"]
    assert list(df["Date"]) == ["2024-03-01", "2024-03-05"]
    assert list(df["Store"]) == ["Uptown", "Downtown"]


def test_download_without_name_redirects(client):
    resp = client.get("/download")
    assert resp.status_code == 302


def test_refresh_failure_keeps_previous_data(client, store):
    client.get("/")
    assert store.loaded_at is not None

    def failing_loader():
        raise SheetFetchError("offline")

    store._loader = failing_loader
    resp = client.post("/refresh", follow_redirects=True)
    body = resp.get_data(as_text=True)
    assert FETCH_ERROR_MESSAGE in body
    assert "Total: 5 Shifts" in body


def test_refresh_returns_to_selected_employee(client):
    resp = client.post("/refresh", data={"name": "Bob"})
    assert resp.status_code == 302
    assert "/shifts?name=Bob" in resp.headers["Location"]


def test_html_source_sets_format_error():
    def html_loader():
        raise SheetFormatError("html")

    store = ScheduleStore(loader=html_loader)
    assert store.refresh() is False
    assert store.error == HTML_ERROR_MESSAGE
    assert store.snapshot() == []


def test_refresh_replaces_snapshot():
    texts = ["date,A-Day\n2024-01-01,Ana", "date,A-Day\n2024-01-02,Bob"]
    store = ScheduleStore(loader=lambda: texts.pop(0))
    store.refresh()
    first = store.snapshot()
    store.refresh()
    assert [r.employee_name for r in first] == ["Ana"]
    assert [r.employee_name for r in store.snapshot()] == ["Bob"]


def test_gate_redirects_to_login(client, monkeypatch):
    monkeypatch.setitem(shift_finder_app.app.config, "ACCESS_CODE", "s3cret")
    resp = client.get("/")
    assert resp.status_code == 302
    assert "/login" in resp.headers["Location"]

    api = client.get("/api/shifts")
    assert api.status_code == 401


def test_gate_rejects_wrong_code(client, monkeypatch):
    monkeypatch.setitem(shift_finder_app.app.config, "ACCESS_CODE", "s3cret")
    resp = client.post("/login", data={"access_code": "nope"})
    assert resp.status_code == 200
    assert "Неверный код доступа." in resp.get_data(as_text=True)
    assert client.get("/").status_code == 302


def test_gate_accepts_code_and_logout_clears_it(client, monkeypatch):
    monkeypatch.setitem(shift_finder_app.app.config, "ACCESS_CODE", "s3cret")
    resp = client.post("/login?next=/shifts?name=Ana", data={"access_code": "s3cret"})
    assert resp.status_code == 302
    assert client.get("/").status_code == 200

    client.get("/logout")
    assert client.get("/").status_code == 302


def test_login_ignores_external_next(client, monkeypatch):
    monkeypatch.setitem(shift_finder_app.app.config, "ACCESS_CODE", "s3cret")
    resp = client.post("/login?next=//evil.example.com", data={"access_code": "s3cret"})
    assert resp.headers["Location"].endswith("/")
    assert "evil" not in resp.headers["Location"]


def test_login_redirects_when_gate_disabled(client):
    resp = client.get("/login")
    assert resp.status_code == 302


def test_date_filters():
    assert shift_finder_app.month_short_filter("2024-03-01") == "мар."
    assert shift_finder_app.day_of_month_filter("2024-03-01 08:00") == "1"
    assert shift_finder_app.weekday_name_filter("2024-03-01") == "пятница"
    for bad in ["", "2024-02-30", "soon", None]:
        assert shift_finder_app.month_short_filter(bad) == ""
        assert shift_finder_app.day_of_month_filter(bad) == ""
        assert shift_finder_app.weekday_name_filter(bad) == ""


def test_failed_first_load_is_retried():
    attempts = []

    def flaky_loader():
        attempts.append(1)
        if len(attempts) == 1:
            raise SheetFetchError("offline")
        return "date,A-Day\n2024-01-01,Ana"

    store = ScheduleStore(loader=flaky_loader)
    store.ensure_loaded()
    assert store.view().error == FETCH_ERROR_MESSAGE

    store.ensure_loaded()
    view = store.view()
    assert view.error == ""
    assert [r.employee_name for r in view.records] == ["Ana"]

    store.ensure_loaded()
    assert len(attempts) == 2


def test_view_reads_records_and_error_together():
    store = ScheduleStore(loader=lambda: "date,A-Day\n2024-01-01,Ana")
    store.refresh()
    view = store.view()
    assert [r.employee_name for r in view.records] == ["Ana"]
    assert view.error == ""
    assert view.loaded_at is not None

    view.records.clear()
    assert len(store.view().records) == 1
