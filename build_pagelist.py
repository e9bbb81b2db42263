#!/usr/bin/env python3
"""
Build the page-list manifest and sitemap.xml from the content tree.

Walks the page tree, keeps the files that are actual pages (not layouts,
error pages, private ``_`` folders or dynamic ``[slug]`` routes), turns each
path into the URL it is served at, and writes:

    pagelist.txt   - one route per line, sorted, used to flag broken links
    sitemap.xml    - one <url> per route for search engines

Path conventions:
    about.md                            -> /about
    instruction/index.md                -> /instruction
    (register)/register/control/page.md -> /register/control
    (home)/page.md                      -> /

Usage:
    python build_pagelist.py [--pages-dir PATH] [--output-dir PATH]
                             [--base-url URL] [--lastmod]
"""

import argparse
import subprocess
import sys
import xml.etree.ElementTree as ET
from pathlib import Path, PurePosixPath
from urllib.parse import quote


SITEMAP_NS = 'http://www.sitemaps.org/schemas/sitemap/0.9'
DEFAULT_BASE_URL = 'https://arch86.com'

PAGE_SUFFIXES = {'.md', '.yaml', '.yml', '.html'}

# Files with special meaning to the layout system; never pages themselves
RESERVED_STEMS = {
    'error', 'global-error', 'layout', 'template', 'loading',
    'not-found', 'default', '404', '500',
}

INDEX_STEMS = ('page', 'index')


def _is_route_group(part: str) -> bool:
    return part.startswith('(') and part.endswith(')')


def is_content_page(rel_path: PurePosixPath) -> bool:
    """Decide whether a file (relative to the pages dir) is a servable page."""
    rel_path = PurePosixPath(rel_path)
    if rel_path.suffix.lower() not in PAGE_SUFFIXES:
        return False
    if rel_path.stem in RESERVED_STEMS:
        return False

    for part in rel_path.parts:
        if part.startswith(('_', '.')):
            return False
        if '[' in part and ']' in part:
            return False

    # route groups never count as the first URL segment
    first = next((part for part in rel_path.parts if not _is_route_group(part)), None)
    return first != 'api'


def route_for(rel_path: PurePosixPath) -> str:
    """Normalize a page path to its URL path."""
    rel_path = PurePosixPath(rel_path)
    if rel_path.is_absolute() or '..' in rel_path.parts:
        raise ValueError(f"Page path must be relative to the pages directory: {rel_path}")

    parts = list(rel_path.with_suffix('').parts)
    if parts and parts[-1] in INDEX_STEMS:
        parts.pop()
    parts = [part for part in parts if not _is_route_group(part)]

    return '/' + '/'.join(parts)


def collect_pages(pages_dir: Path) -> list[tuple[str, Path]]:
    """Return (route, file) for every content page, sorted by route then file."""
    if not pages_dir.is_dir():
        raise FileNotFoundError(f"Pages directory not found: {pages_dir}")

    pages = []
    for file_path in pages_dir.rglob('*'):
        if not file_path.is_file():
            continue
        rel_path = PurePosixPath(file_path.relative_to(pages_dir).as_posix())
        if not is_content_page(rel_path):
            continue
        pages.append((route_for(rel_path), file_path))

    pages.sort(key=lambda page: (page[0], page[1].as_posix()))
    return pages


def collect_routes(pages_dir: Path) -> list[str]:
    """The route manifest: unique routes in lexicographic order."""
    return sorted({route for route, _ in collect_pages(pages_dir)})


def write_manifest(routes, output_path: Path) -> None:
    output_path.write_text(''.join(f"{route}\n" for route in routes), encoding='utf-8')


def read_manifest(manifest_path: Path) -> list[str]:
    lines = manifest_path.read_text(encoding='utf-8').splitlines()
    return [line.strip() for line in lines if line.strip()]


def git_lastmod(file_path: Path) -> str | None:
    """Author date (strict ISO 8601) of the last commit touching ``file_path``."""
    try:
        result = subprocess.run(
            ['git', 'log', '-1', '--format=%aI', '--', file_path.name],
            cwd=file_path.parent,
            capture_output=True,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return None
    return result.stdout.strip() or None


def build_sitemap(routes, base_url: str, lastmod: dict[str, str] | None = None) -> ET.ElementTree:
    """Build a sitemaps.org <urlset> with one <url><loc> per route."""
    base_url = base_url.rstrip('/')
    lastmod = lastmod or {}

    ET.register_namespace('', SITEMAP_NS)
    urlset = ET.Element(f'{{{SITEMAP_NS}}}urlset')
    for route in routes:
        url = ET.SubElement(urlset, f'{{{SITEMAP_NS}}}url')
        loc = ET.SubElement(url, f'{{{SITEMAP_NS}}}loc')
        loc.text = base_url + quote(route)
        if route in lastmod:
            mod = ET.SubElement(url, f'{{{SITEMAP_NS}}}lastmod')
            mod.text = lastmod[route]

    return ET.ElementTree(urlset)


def write_sitemap(tree: ET.ElementTree, output_path: Path) -> None:
    ET.indent(tree, space='  ')
    tree.write(output_path, encoding='UTF-8', xml_declaration=True)


def build_pagelist(pages_dir: Path, output_dir: Path, base_url: str,
                   with_lastmod: bool = False) -> list[str]:
    """Write pagelist.txt and sitemap.xml into ``output_dir``; return the routes."""
    print("=== Scanning pages ===")
    pages = collect_pages(pages_dir)
    routes = sorted({route for route, _ in pages})
    print(f"  {len(pages)} page files, {len(routes)} routes")

    lastmod = {}
    if with_lastmod:
        for route, file_path in pages:
            if route in lastmod:
                continue
            date = git_lastmod(file_path)
            if date:
                lastmod[route] = date
            else:
                print(f"  Warning: No git history for {file_path}")

    output_dir.mkdir(parents=True, exist_ok=True)

    manifest_path = output_dir / 'pagelist.txt'
    write_manifest(routes, manifest_path)
    print(f"  Written: {manifest_path}")

    sitemap_path = output_dir / 'sitemap.xml'
    write_sitemap(build_sitemap(routes, base_url, lastmod), sitemap_path)
    print(f"  Written: {sitemap_path}")

    return routes


def main():
    parser = argparse.ArgumentParser(
        description='Build pagelist.txt and sitemap.xml from the content tree'
    )
    parser.add_argument(
        '--pages-dir',
        type=Path,
        default=Path('content'),
        help='Root of the page tree (default: ./content)'
    )
    parser.add_argument(
        '--output-dir',
        type=Path,
        default=Path('site'),
        help='Where to write pagelist.txt and sitemap.xml (default: ./site)'
    )
    parser.add_argument(
        '--base-url',
        default=DEFAULT_BASE_URL,
        help=f'Site URL prepended to every route (default: {DEFAULT_BASE_URL})'
    )
    parser.add_argument(
        '--lastmod',
        action='store_true',
        help='Add <lastmod> dates taken from git history'
    )

    args = parser.parse_args()

    try:
        routes = build_pagelist(args.pages_dir, args.output_dir, args.base_url, args.lastmod)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"\nTotal routes: {len(routes)}")


if __name__ == '__main__':
    main()
