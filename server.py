#!/usr/bin/env python3
"""
Arch86 - Local Preview Server

Serves the output of build_site.py the way the production host does:
``/register/control`` answers with ``register/control/index.html`` and
unknown paths get ``404.html`` with a 404 status.

Usage:
    python server.py [--port PORT] [--site-dir PATH]

Then open http://localhost:8080 in your browser.
"""

import argparse
import mimetypes
from http.server import HTTPServer, BaseHTTPRequestHandler
from pathlib import Path
from urllib.parse import unquote, urlparse

# Global config
SITE_DIR = Path('site')


def resolve_request(site_dir: Path, url_path: str) -> Path | None:
    """
    Map a URL path to a file in the built site, or None when nothing matches.

    Paths that would escape ``site_dir`` never resolve.
    """
    root = site_dir.resolve()
    rel = unquote(url_path).split('?')[0].lstrip('/')
    candidate = (root / rel).resolve()

    if candidate != root and root not in candidate.parents:
        return None

    if candidate.is_dir():
        candidate = candidate / 'index.html'
    if candidate.is_file():
        return candidate
    return None


class RequestHandler(BaseHTTPRequestHandler):
    protocol_version = 'HTTP/1.0'

    def send_file(self, file_path: Path, status: int = 200):
        """Send a file with its content type."""
        body = file_path.read_bytes()
        content_type = mimetypes.guess_type(file_path.name)[0] or 'application/octet-stream'
        if content_type.startswith('text/') or content_type.endswith('xml'):
            content_type += '; charset=utf-8'
        self.send_response(status)
        self.send_header('Content-Type', content_type)
        self.send_header('Content-Length', str(len(body)))
        self.send_header('Connection', 'close')
        self.end_headers()
        self.wfile.write(body)
        self.wfile.flush()

    def send_not_found(self):
        not_found = SITE_DIR / '404.html'
        if not_found.is_file():
            self.send_file(not_found, status=404)
            return
        self.send_response(404)
        self.send_header('Content-Type', 'text/plain; charset=utf-8')
        self.send_header('Connection', 'close')
        self.end_headers()
        self.wfile.write(b'Not found')

    def do_GET(self):
        path = urlparse(self.path).path
        file_path = resolve_request(SITE_DIR, path)

        if file_path is None:
            print(f"Not found: {path}", flush=True)
            self.send_not_found()
        else:
            self.send_file(file_path)

    def log_message(self, format, *args):
        print(f"[{self.command}] {self.path}", flush=True)


def main():
    global SITE_DIR

    parser = argparse.ArgumentParser(description='Arch86 local preview server')
    parser.add_argument('--port', type=int, default=8080, help='Port to run server on')
    parser.add_argument('--site-dir', type=Path, default=Path('site'),
                        help='Directory produced by build_site.py')

    args = parser.parse_args()

    SITE_DIR = args.site_dir

    if not (SITE_DIR / 'index.html').exists():
        print(f"Warning: No index.html in {SITE_DIR}")
        print("Run build_site.py first to build the site.")

    server = HTTPServer(('localhost', args.port), RequestHandler)
    print(f"\n{'='*50}")
    print("  Arch86 Preview Server")
    print(f"{'='*50}")
    print(f"\n  Open in browser: http://localhost:{args.port}")
    print(f"\n  Press Ctrl+C to stop the server")
    print(f"{'='*50}\n")

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\nServer stopped.")
        server.server_close()


if __name__ == '__main__':
    main()
