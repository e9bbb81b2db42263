#!/usr/bin/env python3
"""
Build the static Arch86 reference site from the content tree.

Every page file under the content directory is rendered to a standalone
HTML file at the URL its path maps to, so the output can be served from any
web server (or GitHub Pages) without rewrites.

Usage:
    python build_site.py [--content-dir PATH] [--output PATH] [--base-url URL]

Produces:
    site/
      index.html                    - /
      about/index.html              - /about
      instruction/aesimc/index.html - /instruction/aesimc
      ...
      404.html                      - from content/not-found.md
      pagelist.txt                  - route manifest
      sitemap.xml
"""

import argparse
import html
import re
import shutil
import sys
import time
from pathlib import Path

from build_pagelist import build_pagelist, collect_pages
from components import LinkContext, breadcrumbs, nav_bar, page_header, references
from instruction_layout import render_instruction, render_instruction_index
from load_pages import load_page, load_site_config, validate_page
from markdown_html import inline_html, markdown_to_html
from toc import entry_from_data, render_toc, toc_from_headings


# ---------------------------------------------------------------------------
# Page template
# ---------------------------------------------------------------------------

PAGE_TEMPLATE = r'''<!DOCTYPE html>
<html lang="en-US">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <meta name="author" content="{AUTHOR}">
{CANONICAL}
    <link rel="shortcut icon" type="image/x-icon" href="/favicon.ico">
    <title>{TITLE}</title>
    <style>
        :root {
            --color-nav: #1f2937;
            --color-bg: #f3f4f6;
            --color-card: #ffffff;
            --color-text: #1f2937;
            --color-link: #2563eb;
            --color-broken: #ef4444;
            --color-valid: #86efac;
            --color-invalid: #fca5a5;
            --color-partial: #fde047;
            --color-reserved: #cbd5e1;
            --radius: 6px;
            --shadow: 0 1px 3px rgba(0,0,0,0.1);
        }

        *, *::before, *::after { box-sizing: border-box; }

        body {
            margin: 0;
            font-family: Inter, -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
            background: var(--color-bg);
            color: var(--color-text);
            line-height: 1.6;
            display: flex;
            flex-direction: column;
            min-height: 100vh;
        }

        a { color: var(--color-link); text-decoration: none; }
        a:hover { text-decoration: underline; }
        a.broken-link { color: var(--color-broken); }

        .navbar {
            background: var(--color-nav);
            padding: 1rem 2rem;
            display: flex;
            flex-wrap: wrap;
            gap: 1rem;
        }
        .navbar a { color: #d1d5db; padding: 0.4rem 0.75rem; border-radius: var(--radius); }
        .navbar a.nav-item-active { background: #111827; color: #ffffff; }

        .page-header { background: var(--color-card); box-shadow: var(--shadow); padding: 1.5rem 2rem; }
        .page-header h1 { margin: 0; font-size: 1.875rem; }

        main { flex: 1; max-width: 80rem; width: 100%; margin: 0 auto; padding: 1.5rem 2rem; }

        .breadcrumbs, .content, .toc {
            background: var(--color-card);
            box-shadow: var(--shadow);
            border-radius: var(--radius);
            padding: 1rem;
            margin-bottom: 0.5rem;
        }
        .breadcrumbs ul { list-style: none; margin: 0; padding: 0; display: flex; flex-wrap: wrap; }
        .breadcrumbs li + li::before { content: "/"; padding: 0 0.5rem; color: #9ca3af; }

        .toc { float: left; margin-right: 1rem; }
        .toc summary { font-weight: 600; font-size: 1.125rem; cursor: pointer; }
        .toc ul { list-style: none; margin: 0; padding-left: 0; }
        .toc ul.toc-children { padding-left: 1rem; }

        .clear { clear: both; }
        .scrollable { overflow-x: auto; }
        .nowrap { white-space: nowrap; }
        .center { text-align: center; }

        table { border-collapse: collapse; margin: 0.5rem 0; }
        th, td { border: 1px solid #d1d5db; padding: 0.25rem 0.5rem; vertical-align: top; }
        th { background: #f9fafb; }
        td.opcode { font-size: 0.875rem; }
        td.opcode hr { margin: 0.25rem 0; border: none; border-top: 1px solid #e5e7eb; }
        td.validity-valid { background: var(--color-valid); text-align: center; }
        td.validity-invalid { background: var(--color-invalid); text-align: center; }
        td.validity-partial { background: var(--color-partial); text-align: center; }
        table.bitfield th, table.bitfield td { text-align: center; padding: 0.375rem; }
        td.bitfield-reserved { background: var(--color-reserved); }

        pre { background: #fafafa; border: 1px solid #e5e7eb; border-radius: var(--radius); padding: 0.75rem; overflow-x: auto; }
        .wip { background: #fef9c3; border: 1px solid #facc15; border-radius: var(--radius); padding: 0.5rem 1rem; margin-bottom: 1rem; }

        footer { background: var(--color-card); box-shadow: var(--shadow); padding: 1.5rem 2rem 2.5rem; font-size: 0.875rem; }
    </style>
</head>
<body>
{NAVBAR}
{HEADER}
<main>
{BODY}
</main>
<footer>
    <p>{COPYRIGHT}</p>
</footer>
</body>
</html>
'''

_TAG_RE = re.compile(r'<[^>]+>')


def plain_title(page: dict, ctx: LinkContext) -> str:
    """Text-only title for <title>, from ``title_plain`` or the rendered title."""
    if page.get('title_plain'):
        return str(page['title_plain'])
    return html.unescape(_TAG_RE.sub('', inline_html(str(page['title']), ctx)))


def output_path_for(route: str, output_dir: Path) -> Path:
    if route == '/':
        return output_dir / 'index.html'
    return output_dir / route.lstrip('/') / 'index.html'


def render_body(page: dict, ctx: LinkContext, instructions) -> str:
    """Render the main column of a prose or index page."""
    if page['format'] == 'html':
        body_html = page['body']
    else:
        body_html = markdown_to_html(page['body'], ctx)

    index_toc = []
    if page['layout'] == 'instruction-index':
        index_html, index_toc = render_instruction_index(instructions, ctx)
        body_html = body_html + '\n<div class="clear"></div>\n' + index_html

    if ctx.citations and 'id="headingReferences"' not in body_html:
        body_html += '\n' + references(ctx.citations)

    toc_data = page.get('toc')
    if toc_data == 'auto':
        entries = toc_from_headings(body_html)
    else:
        entries = [entry_from_data(item) for item in (toc_data or []) + index_toc]
    toc_html = render_toc(entries, ctx, collapsed=bool(page.get('toc_collapsed')))

    parts = []
    if page.get('breadcrumbs'):
        parts.append(breadcrumbs(page['breadcrumbs'], ctx))
    parts.append('<div class="content">')
    if toc_html:
        parts.append(toc_html)
    parts.append(body_html)
    parts.append('<div class="clear"></div>')
    parts.append('</div>')
    return '\n'.join(parts)


def render_page(page: dict, route: str, site: dict, routes, instructions=()) -> tuple[str, list[str]]:
    """Render a full HTML document; also return the broken internal links found."""
    citations = page.get('citations') or {}
    bitfields = page.get('bitfields') or {}
    if not isinstance(citations, dict) or not isinstance(bitfields, dict):
        raise ValueError("citations and bitfields must be mappings")

    ctx = LinkContext(pages=set(routes), citations=citations, bitfields=bitfields, route=route)

    if page['layout'] == 'instruction':
        body = render_instruction(page, ctx)
        header_html = inline_html(str(page['title']), ctx)
    else:
        body = render_body(page, ctx, instructions)
        header_html = inline_html(str(page.get('header') or page['title']), ctx)

    title = plain_title(page, ctx)
    if route != '/':
        title = site['title_template'].replace('%s', title)
    # the 404 page (empty route) has no canonical URL
    canonical = ''
    if route:
        url = site['base_url'].rstrip('/') + route
        canonical = f'    <link rel="canonical" href="{html.escape(url)}">'

    document = PAGE_TEMPLATE
    replacements = {
        '{AUTHOR}': html.escape(site['author']),
        '{CANONICAL}': canonical,
        '{TITLE}': html.escape(title),
        '{NAVBAR}': nav_bar(page.get('nav_group'), site['navigation'], ctx),
        '{HEADER}': page_header(header_html),
        '{COPYRIGHT}': site['copyright'],
        '{BODY}': body,
    }
    # BODY last so page text that happens to contain a placeholder is left alone
    for placeholder, value in replacements.items():
        document = document.replace(placeholder, value)

    return document, ctx.broken


# ---------------------------------------------------------------------------
# Site builder
# ---------------------------------------------------------------------------

def build_site(content_dir: Path, output_dir: Path, base_url: str | None = None,
               lastmod: bool = False, validate: bool = False,
               static_dir: Path | None = None) -> int:
    """
    Build the complete static site. Returns the number of pages that failed.

    Steps:
      1. Load site settings from content/layout.yaml
      2. Scan the page tree, write pagelist.txt and sitemap.xml
      3. Load every page file
      4. Render each page to ROUTE/index.html
      5. Render content/not-found.md to 404.html
      6. Copy static files
      7. Report broken internal links
    """
    start_time = time.time()

    print(f"Content directory: {content_dir}")
    print(f"Output directory:  {output_dir}")
    print()

    if not content_dir.is_dir():
        raise FileNotFoundError(f"Content directory not found: {content_dir}")

    # ------------------------------------------------------------------
    # Step 1: Site settings
    # ------------------------------------------------------------------
    site = load_site_config(content_dir)
    if base_url:
        site['base_url'] = base_url

    # ------------------------------------------------------------------
    # Step 2: Route manifest and sitemap
    # ------------------------------------------------------------------
    routes = build_pagelist(content_dir, output_dir, site['base_url'], lastmod)
    print()

    # ------------------------------------------------------------------
    # Step 3: Load pages
    # ------------------------------------------------------------------
    print("=== Loading pages ===")
    error_count = 0
    loaded = []
    seen = set()
    for route, file_path in collect_pages(content_dir):
        if route in seen:
            print(f"  Warning: {file_path} duplicates route {route}, skipped")
            continue
        seen.add(route)
        try:
            page = load_page(file_path)
        except ValueError as e:
            print(f"  Error: {e}")
            error_count += 1
            continue
        loaded.append((route, page))

        if validate:
            try:
                issues = validate_page(page)
            except (TypeError, ValueError) as e:
                issues = [f"{page['source']}: {e}"]
            for issue in issues:
                print(f"  Issue: {issue}")

    instructions = [(route, page) for route, page in loaded if page['layout'] == 'instruction']
    print(f"  Loaded {len(loaded)} pages ({len(instructions)} instructions)")
    print()

    # ------------------------------------------------------------------
    # Step 4: Render pages
    # ------------------------------------------------------------------
    print("=== Rendering pages ===")
    broken_links = {}
    layout_counts = {}
    for route, page in loaded:
        try:
            document, broken = render_page(page, route, site, routes, instructions)
        except (KeyError, TypeError, ValueError) as e:
            print(f"  Warning: Failed to render {route} ({page['source']}): {e}")
            error_count += 1
            continue

        out_path = output_path_for(route, output_dir)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(document, encoding='utf-8')

        layout_counts[page['layout']] = layout_counts.get(page['layout'], 0) + 1
        for href in broken:
            broken_links.setdefault(href, set()).add(route)

    for layout in sorted(layout_counts):
        print(f"  {layout}: {layout_counts[layout]} pages")
    print()

    # ------------------------------------------------------------------
    # Step 5: 404 page
    # ------------------------------------------------------------------
    not_found_path = content_dir / 'not-found.md'
    if not_found_path.exists():
        print("=== Writing 404.html ===")
        try:
            page = load_page(not_found_path)
            document, _ = render_page(page, '', site, routes)
            (output_dir / '404.html').write_text(document, encoding='utf-8')
            print("  Written: 404.html")
        except (KeyError, TypeError, ValueError) as e:
            print(f"  Warning: Failed to render 404 page: {e}")
            error_count += 1
        print()

    # ------------------------------------------------------------------
    # Step 6: Static files
    # ------------------------------------------------------------------
    if static_dir and static_dir.is_dir():
        shutil.copytree(static_dir, output_dir, dirs_exist_ok=True)
        print(f"  Copied static files from {static_dir}")
        print()

    # ------------------------------------------------------------------
    # Step 7: Broken links
    # ------------------------------------------------------------------
    if broken_links:
        print("=== Broken internal links ===")
        for href in sorted(broken_links):
            pages = ', '.join(sorted(broken_links[href]))
            print(f"  {href} (from {pages})")
        print()

    elapsed = time.time() - start_time
    print("=" * 50)
    print(f"  Build complete in {elapsed:.1f}s")
    print(f"  {sum(layout_counts.values())} pages, {len(broken_links)} broken links")
    if error_count:
        print(f"  Errors: {error_count}")
    print(f"  Output: {output_dir.resolve()}")
    print("=" * 50)

    return error_count


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def main():
    parser = argparse.ArgumentParser(
        description='Build the static Arch86 reference site.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python build_site.py
    python build_site.py --output ./public_html
    python build_site.py --base-url https://staging.arch86.com --validate
    python build_site.py --lastmod
        """,
    )
    parser.add_argument(
        '--content-dir',
        type=Path,
        default=Path('content'),
        help='Root of the page tree (default: ./content)',
    )
    parser.add_argument(
        '--output',
        type=Path,
        default=Path('site'),
        help='Output directory for the static site (default: ./site)',
    )
    parser.add_argument(
        '--base-url',
        default=None,
        help='Site URL for the sitemap and canonical links (default: base_url in layout.yaml)',
    )
    parser.add_argument(
        '--static-dir',
        type=Path,
        default=Path('public'),
        help='Directory of static files copied as-is into the output (default: ./public)',
    )
    parser.add_argument(
        '--lastmod',
        action='store_true',
        help='Add <lastmod> dates from git history to sitemap.xml',
    )
    parser.add_argument(
        '--validate',
        action='store_true',
        help='Report page data issues while loading',
    )

    args = parser.parse_args()

    try:
        errors = build_site(
            args.content_dir,
            args.output,
            base_url=args.base_url,
            lastmod=args.lastmod,
            validate=args.validate,
            static_dir=args.static_dir,
        )
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    if errors:
        sys.exit(1)


if __name__ == '__main__':
    main()
