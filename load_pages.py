#!/usr/bin/env python3
"""
Load Arch86 page files and the site settings.

Pages come in two shapes:
  - Markdown (.md) or HTML (.html) with a YAML frontmatter block, used for
    prose pages (home, about, registers, architecture history).
  - Plain YAML (.yaml/.yml) holding a single mapping, used for instruction
    pages whose content is mostly tables.

Site-wide settings live in the reserved ``layout.yaml`` at the root of the
content tree.

Usage:
    python load_pages.py [--content-dir PATH]

Prints each page with any validation issues found.
"""

import argparse
import copy
import re
import sys
from pathlib import Path
from typing import Any

try:
    import yaml
except ImportError:
    print("Error: PyYAML is required. Install with: pip install pyyaml")
    sys.exit(1)

from build_pagelist import collect_pages
from instruction_layout import validate_instruction


FRONTMATTER_RE = re.compile(r'\A---[ \t]*\n(.*?)^---[ \t]*(?:\n|\Z)(.*)\Z', re.DOTALL | re.MULTILINE)

LAYOUTS = ('page', 'instruction', 'instruction-index')

DEFAULT_SITE = {
    'name': 'Arch86',
    'title_template': '%s | Arch86',
    'base_url': 'https://arch86.com',
    'author': 'Cole Tobin',
    'copyright': 'Website copyright &copy; Cole Tobin 2020-2023.',
    'navigation': [
        {'name': 'Arch86', 'href': '/', 'group': 'home'},
        {'name': 'History', 'href': '/history', 'group': 'history'},
        {'name': 'Microarchitecture', 'href': '/architecture', 'group': 'architecture'},
        {'name': 'Registers', 'href': '/register', 'group': 'register'},
        {'name': 'Operating Modes', 'href': '/mode', 'group': 'mode'},
        {'name': 'ISA Extensions', 'href': '/extension', 'group': 'extension'},
        {'name': 'Instructions', 'href': '/instruction', 'group': 'instruction'},
        {'name': 'About', 'href': '/about', 'group': 'about'},
    ],
}


def extract_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split a document into its YAML frontmatter mapping and the body."""
    match = FRONTMATTER_RE.match(text)
    if not match:
        return {}, text

    try:
        frontmatter = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML frontmatter: {e}") from e

    if frontmatter is None:
        frontmatter = {}
    if not isinstance(frontmatter, dict):
        raise ValueError("Frontmatter must be a mapping")

    return frontmatter, match.group(2)


def load_page(path: Path) -> dict[str, Any]:
    """Load one page file into a dict with ``body``, ``source`` and ``format`` added."""
    try:
        text = path.read_text(encoding='utf-8')
    except OSError as e:
        raise ValueError(f"Could not read {path}: {e}") from e

    suffix = path.suffix.lower()
    if suffix in ('.yaml', '.yml'):
        try:
            page = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(page, dict):
            raise ValueError(f"{path}: page file must hold a mapping")
        body = ''
        fmt = 'yaml'
    else:
        try:
            page, body = extract_frontmatter(text)
        except ValueError as e:
            raise ValueError(f"{path}: {e}") from e
        fmt = 'html' if suffix == '.html' else 'markdown'

    if not page.get('title'):
        raise ValueError(f"{path}: page has no title")

    page = dict(page)
    page.setdefault('layout', 'instruction' if fmt == 'yaml' else 'page')
    page['body'] = body
    page['source'] = str(path)
    page['format'] = fmt
    return page


def load_site_config(content_dir: Path) -> dict[str, Any]:
    """Read ``layout.yaml`` from the content root over the built-in defaults."""
    site = copy.deepcopy(DEFAULT_SITE)
    config_path = content_dir / 'layout.yaml'
    if not config_path.exists():
        return site

    try:
        loaded = yaml.safe_load(config_path.read_text(encoding='utf-8')) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_path}: {e}") from e
    if not isinstance(loaded, dict):
        raise ValueError(f"{config_path}: site settings must be a mapping")

    site.update(loaded)
    if '%s' not in site['title_template']:
        raise ValueError(f"{config_path}: title_template must contain '%s'")
    return site


def validate_page(page: dict[str, Any]) -> list[str]:
    """Check for common page data issues."""
    issues = []
    source = page.get('source', 'unknown')

    if not page.get('title'):
        issues.append(f"{source}: Missing title")

    layout = page.get('layout', 'page')
    if layout not in LAYOUTS:
        issues.append(f"{source}: Unknown layout: {layout}")
    elif layout == 'instruction':
        issues.extend(f"{source}: {issue}" for issue in validate_instruction(page))
    elif layout == 'page' and not page.get('body', '').strip():
        issues.append(f"{source}: Empty page body")

    toc = page.get('toc')
    if toc is not None and toc != 'auto' and not isinstance(toc, list):
        issues.append(f"{source}: toc must be a list or 'auto'")

    return issues


def main():
    parser = argparse.ArgumentParser(
        description='Load and validate Arch86 page files'
    )
    parser.add_argument(
        '--content-dir',
        type=Path,
        default=Path('content'),
        help='Root of the page tree (default: ./content)'
    )
    args = parser.parse_args()

    if not args.content_dir.exists():
        print(f"Error: Content directory not found: {args.content_dir}")
        sys.exit(1)

    issue_count = 0
    for route, path in collect_pages(args.content_dir):
        try:
            page = load_page(path)
        except ValueError as e:
            print(f"  Error: {e}")
            issue_count += 1
            continue
        print(f"  {route}: {page['title']} ({page['layout']})")
        for issue in validate_page(page):
            print(f"    {issue}")
            issue_count += 1

    print(f"\n{issue_count} issue(s) found.")
    sys.exit(1 if issue_count else 0)


if __name__ == '__main__':
    main()
