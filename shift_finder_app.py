#!/usr/bin/env python3
"""
ShiftFinder - Flask Web Application
Loads the published schedule sheet, lets an employee pick their name and
shows (or downloads) their upcoming shifts.
"""

from flask import Flask, render_template, request, redirect, url_for, flash, send_file, jsonify, session
from flask_cors import CORS
import pandas as pd
from datetime import datetime
from dataclasses import dataclass
from typing import List, Optional
import threading
import secrets
import os
from io import BytesIO
import traceback
from werkzeug.utils import secure_filename

from sheet_fetcher import (
    DEFAULT_TIMEOUT,
    PROXY_URL_TEMPLATE,
    SHEET_URL,
    SheetFetchError,
    SheetFormatError,
    load_schedule_text,
)
from shift_parser import (
    ShiftRecord,
    employee_names,
    is_night_shift,
    parse_schedule,
    shift_count,
    shifts_for_employee,
)

app = Flask(__name__)
CORS(app, resources={r"/api/*": {"origins": "*"}})

app.secret_key = os.environ.get('SHIFT_FINDER_SECRET_KEY') or secrets.token_hex(32)
app.config['MAX_CONTENT_LENGTH'] = 1 * 1024 * 1024  # no uploads, keep request bodies small
app.config['SHEET_URL'] = os.environ.get('SHIFT_FINDER_SHEET_URL', SHEET_URL)
app.config['PROXY_URL_TEMPLATE'] = os.environ.get('SHIFT_FINDER_PROXY_URL', PROXY_URL_TEMPLATE)
app.config['FETCH_TIMEOUT'] = float(os.environ.get('SHIFT_FINDER_FETCH_TIMEOUT', DEFAULT_TIMEOUT))
# Shared access code for the login gate; the gate is open when this is empty
app.config['ACCESS_CODE'] = os.environ.get('SHIFT_FINDER_ACCESS_CODE', '')

FETCH_ERROR_MESSAGE = 'Не удалось загрузить данные. Проверьте публикацию таблицы.'
HTML_ERROR_MESSAGE = 'Ошибка: получена страница HTML вместо данных.'

XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'

RU_MONTHS_SHORT = ['янв.', 'февр.', 'мар.', 'апр.', 'мая', 'июн.',
                   'июл.', 'авг.', 'сент.', 'окт.', 'нояб.', 'дек.']
RU_WEEKDAYS = ['понедельник', 'вторник', 'среда', 'четверг', 'пятница', 'суббота', 'воскресенье']


@dataclass(frozen=True)
class ScheduleView:
    records: List[ShiftRecord]
    error: str
    loaded_at: Optional[datetime]


class ScheduleStore:
    """
    Holds the most recently fetched sheet and its parsed shifts.
    A refresh replaces the whole snapshot; a failed refresh keeps the old data
    and records a user-facing error message instead.
    """

    def __init__(self, loader=None):
        self._loader = loader or self._load_from_config
        self._lock = threading.Lock()
        self.raw_text = ''
        self.records: List[ShiftRecord] = []
        self.error = ''
        self.loaded_at: Optional[datetime] = None

    @staticmethod
    def _load_from_config() -> str:
        return load_schedule_text(
            app.config['SHEET_URL'],
            timeout=app.config['FETCH_TIMEOUT'],
            proxy_template=app.config['PROXY_URL_TEMPLATE'],
        )

    def refresh(self) -> bool:
        """Fetch and parse the sheet again. Returns True when new data was loaded."""
        try:
            text = self._loader()
        except SheetFormatError as e:
            print(f"Sheet source returned HTML: {e}")
            with self._lock:
                self.error = HTML_ERROR_MESSAGE
            return False
        except SheetFetchError as e:
            print(f"Fetch error: {e}")
            with self._lock:
                self.error = FETCH_ERROR_MESSAGE
            return False

        records = parse_schedule(text)
        with self._lock:
            self.raw_text = text
            self.records = records
            self.error = ''
            self.loaded_at = datetime.now()
        print(f"Loaded {len(records)} shifts from the schedule sheet.")
        return True

    def ensure_loaded(self) -> None:
        # Until one load succeeds, every request tries the sheet again
        if self.loaded_at is None:
            self.refresh()

    def snapshot(self) -> List[ShiftRecord]:
        with self._lock:
            return list(self.records)

    def view(self) -> ScheduleView:
        """Records, error and load time read together under the lock."""
        with self._lock:
            return ScheduleView(list(self.records), self.error, self.loaded_at)


schedule_store = ScheduleStore()


# Template helpers (registered once at import)

def _parse_shift_date(value: str) -> Optional[datetime]:
    try:
        return datetime.strptime(value[:10], '%Y-%m-%d')
    except (TypeError, ValueError):
        return None


@app.template_filter('month_short')
def month_short_filter(value: str) -> str:
    parsed = _parse_shift_date(value)
    return RU_MONTHS_SHORT[parsed.month - 1] if parsed else ''


@app.template_filter('day_of_month')
def day_of_month_filter(value: str) -> str:
    parsed = _parse_shift_date(value)
    return str(parsed.day) if parsed else ''


@app.template_filter('weekday_name')
def weekday_name_filter(value: str) -> str:
    parsed = _parse_shift_date(value)
    return RU_WEEKDAYS[parsed.weekday()] if parsed else ''


@app.template_test('night_shift')
def night_shift_test(record: ShiftRecord) -> bool:
    return is_night_shift(record)


# Access gate

def gate_enabled() -> bool:
    return bool(app.config.get('ACCESS_CODE'))


def is_authorized() -> bool:
    return not gate_enabled() or session.get('authorized', False)


@app.before_request
def require_access_code():
    if request.endpoint in ('login', 'static') or is_authorized():
        return None
    if request.path.startswith('/api/'):
        return jsonify({'error': 'unauthorized'}), 401
    return redirect(url_for('login', next=request.path))


# Flask Routes
@app.route('/login', methods=['GET', 'POST'])
def login():
    if not gate_enabled():
        return redirect(url_for('index'))

    if request.method == 'POST':
        submitted = request.form.get('access_code', '')
        if secrets.compare_digest(submitted.encode('utf-8'), app.config['ACCESS_CODE'].encode('utf-8')):
            session['authorized'] = True
            next_path = request.args.get('next', '')
            # Only follow local paths after login
            if next_path.startswith('/') and not next_path.startswith('//'):
                return redirect(next_path)
            return redirect(url_for('index'))
        flash('Неверный код доступа.')

    return render_template('login.html')


@app.route('/logout')
def logout():
    session.pop('authorized', None)
    return redirect(url_for('login') if gate_enabled() else url_for('index'))


@app.route('/')
def index():
    schedule_store.ensure_loaded()
    view = schedule_store.view()
    return render_template('index.html',
                           names=employee_names(view.records),
                           total_shifts=shift_count(view.records),
                           error=view.error,
                           loaded_at=view.loaded_at)


@app.route('/shifts')
def employee_shifts():
    selected_name = request.args.get('name', '')
    if not selected_name:
        return redirect(url_for('index'))

    schedule_store.ensure_loaded()
    view = schedule_store.view()
    return render_template('shifts.html',
                           name=selected_name,
                           shifts=shifts_for_employee(view.records, selected_name),
                           error=view.error)


@app.route('/refresh', methods=['POST'])
def refresh():
    try:
        # Fetch failures are kept on the store and shown by every page
        schedule_store.refresh()
    except Exception as e:
        flash(f'An unexpected error occurred while refreshing the schedule: {str(e)}')
        print(f"Error in refresh: {e}")
        traceback.print_exc()

    selected_name = request.form.get('name', '')
    if selected_name:
        return redirect(url_for('employee_shifts', name=selected_name))
    return redirect(url_for('index'))


@app.route('/api/shifts')
def api_shifts():
    schedule_store.ensure_loaded()
    view = schedule_store.view()
    selected_name = request.args.get('name') or None
    return jsonify({
        'names': employee_names(view.records),
        'shifts': [record.to_dict() for record in shifts_for_employee(view.records, selected_name)],
        'total': shift_count(view.records),
        'error': view.error,
    })


def build_shifts_workbook(shifts: List[ShiftRecord]) -> BytesIO:
    """Write an employee's shifts to an in-memory Excel workbook."""
    shifts_df = pd.DataFrame([record.to_dict() for record in shifts],
                             columns=['employee_name', 'date', 'store', 'shift_time'])
    shifts_df['weekday'] = shifts_df['date'].apply(weekday_name_filter)
    shifts_df = shifts_df.rename(columns={
        'employee_name': 'Employee',
        'date': 'Date',
        'weekday': 'Weekday',
        'store': 'Store',
        'shift_time': 'Shift',
    })[['Employee', 'Date', 'Weekday', 'Store', 'Shift']]

    output = BytesIO()
    with pd.ExcelWriter(output, engine='xlsxwriter') as writer:
        shifts_df.to_excel(writer, sheet_name='Shifts', index=False)
    output.seek(0)
    return output


@app.route('/download')
def download_file():
    try:
        selected_name = request.args.get('name', '')
        if not selected_name:
            flash('Выберите сотрудника, чтобы скачать график.')
            return redirect(url_for('index'))

        schedule_store.ensure_loaded()
        shifts = shifts_for_employee(schedule_store.snapshot(), selected_name)
        output = build_shifts_workbook(shifts)

        # secure_filename drops non-ASCII names entirely
        employee_part = secure_filename(selected_name) or 'employee'
        download_name = f"shifts_{employee_part}_{datetime.now().strftime('%Y%m%d')}.xlsx"
        return send_file(output,
                         as_attachment=True,
                         download_name=download_name,
                         mimetype=XLSX_MIMETYPE)

    except Exception as e:
        flash(f'An error occurred during file download: {str(e)}')
        print(f"Error in download_file: {e}")
        traceback.print_exc()
        return redirect(url_for('index'))


if __name__ == '__main__':
    app.config['TEMPLATES_AUTO_RELOAD'] = True
    port = int(os.environ.get('PORT', 4444))

    if not gate_enabled():
        print("Warning: SHIFT_FINDER_ACCESS_CODE is not set, the schedule is open to anyone.")

    print("Starting ShiftFinder Flask App...")
    print(f"Open your web browser and go to: http://localhost:{port}")
    print("Pick your name to see your upcoming shifts")
    app.run(debug=True, host='0.0.0.0', port=port)
