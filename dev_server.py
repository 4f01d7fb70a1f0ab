#!/usr/bin/env python3
"""
Local server that mimics the Netlify _redirects (200 rewrites) of the main site.

Build the schedule app into main-site/schedule-app first, then:
    python dev_server.py
and open http://localhost:8888/schedule
"""

from flask import Flask, Response, send_file
import os
from typing import Optional
from werkzeug.security import safe_join

SITE_ROOT = os.environ.get(
    'SHIFT_FINDER_SITE_ROOT',
    os.path.join(os.path.dirname(os.path.abspath(__file__)), 'main-site'),
)

APP_PREFIX = '/schedule-app/'

CONTENT_TYPES = {
    '.html': 'text/html',
    '.js': 'application/javascript',
    '.css': 'text/css',
    '.json': 'application/json',
    '.ico': 'image/x-icon',
    '.png': 'image/png',
    '.jpg': 'image/jpeg',
    '.svg': 'image/svg+xml',
    '.woff': 'font/woff',
    '.woff2': 'font/woff2',
}

BUILD_HINT = 'Not found. Run build first: from repo root, bash main-site/build.sh'

app = Flask(__name__, static_folder=None)
app.config['SITE_ROOT'] = SITE_ROOT


def get_content_type(path: str) -> str:
    return CONTENT_TYPES.get(os.path.splitext(path)[1], 'application/octet-stream')


def rewrite_path(pathname: str) -> str:
    """Apply the /schedule rewrites; directory paths get their index.html."""
    if pathname in ('/schedule', '/schedule/'):
        return APP_PREFIX + 'index.html'
    if pathname.startswith('/schedule/'):
        return APP_PREFIX + pathname[len('/schedule/'):]
    if pathname.endswith('/'):
        return pathname + 'index.html'
    return pathname


def resolve_file(site_root: str, pathname: str) -> Optional[str]:
    """Map a URL path to an existing file under the site root, or None."""
    file_path = safe_join(site_root, pathname.lstrip('/'))
    if file_path is None or not os.path.isfile(file_path):
        return None
    return file_path


def not_found(message: str) -> Response:
    return Response(message, status=404, mimetype='text/plain')


@app.route('/', defaults={'request_path': ''})
@app.route('/<path:request_path>')
def serve(request_path):
    site_root = app.config['SITE_ROOT']
    pathname = rewrite_path('/' + request_path)

    file_path = resolve_file(site_root, pathname)
    if file_path is not None:
        return send_file(file_path, mimetype=get_content_type(file_path))

    # SPA fallback: unknown paths inside the app get its entry document
    if pathname.startswith(APP_PREFIX):
        index_path = resolve_file(site_root, APP_PREFIX + 'index.html')
        if index_path is None:
            return not_found(BUILD_HINT)
        return send_file(index_path, mimetype='text/html')

    return not_found(f'Not found: {pathname}')


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 8888))
    print(f"Serving at http://localhost:{port}")
    print("  /          -> main site")
    print("  /schedule  -> schedule app (rewrite)")
    print("  /schedule-app/ -> schedule app (direct)")
    if not os.path.exists(os.path.join(SITE_ROOT, 'schedule-app', 'index.html')):
        print("\nWarning: main-site/schedule-app not found. Run build first:")
        print("  From repo root: bash main-site/build.sh")
    app.run(host='0.0.0.0', port=port)
