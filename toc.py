"""
Table of contents entries for Arch86 pages.

A page's TOC is either declared in its frontmatter (a nested list of
``href``/``text`` mappings) or derived from the section headings of the
rendered page. Either way the entries are numbered here before rendering:
every nesting level is labelled 1, 2, 3, ... in document order, and
anything that is not a real entry (a null left behind by a conditional
section, a stray string) is dropped without taking up a number.
"""

import html
import re
from dataclasses import dataclass, field, replace
from typing import Any

from components import link


@dataclass
class TocEntry:
    """One line of the table of contents."""
    href: str
    text: str
    children: list = field(default_factory=list)
    index: int | None = None


def entry_from_data(data: Any) -> TocEntry | None:
    """Build a TocEntry from a frontmatter mapping, or None for non-entries."""
    if not isinstance(data, dict):
        return None

    href = data.get('href')
    text = data.get('text')
    if not href or not text:
        raise ValueError(f"TOC entry needs both 'href' and 'text': {data!r}")

    children = [entry_from_data(child) for child in data.get('children') or []]
    return TocEntry(href=str(href), text=str(text), children=children)


def number_entries(children) -> list[TocEntry]:
    """
    Label the valid entries of ``children`` 1..M in document order.

    Non-entries are dropped and do not advance the counter. Each entry's
    own children are numbered the same way, starting again at 1. Labels
    come from position alone, so numbering an already numbered list gives
    the same result. The input is left untouched.
    """
    numbered = []
    for child in children or []:
        if not isinstance(child, TocEntry):
            continue
        numbered.append(replace(
            child,
            index=len(numbered) + 1,
            children=number_entries(child.children),
        ))
    return numbered


_HEADING_RE = re.compile(r'<h([1-6])\s+id="([^"]+)"[^>]*>(.*?)</h\1>', re.DOTALL)
_TAG_RE = re.compile(r'<[^>]+>')


def toc_from_headings(fragment: str, levels: tuple[int, int] = (2, 3)) -> list[TocEntry]:
    """
    Derive TOC entries from the ``id``-carrying headings of an HTML fragment.

    ``levels`` gives the heading level of top-level entries and of their
    children. An orphan child heading (one before any top-level heading)
    is promoted to the top level.
    """
    top_level, child_level = levels
    entries = []

    for match in _HEADING_RE.finditer(fragment):
        level = int(match.group(1))
        if level not in (top_level, child_level):
            continue
        text = html.unescape(_TAG_RE.sub('', match.group(3))).strip()
        entry = TocEntry(href=f"#{match.group(2)}", text=text)

        if level == child_level and entries:
            entries[-1].children.append(entry)
        else:
            entries.append(entry)

    return entries


def _render_entry(entry: TocEntry, ctx) -> str:
    parts = [f'<li>{entry.index}. {link(entry.href, html.escape(entry.text), ctx)}']
    if entry.children:
        parts.append('<ul class="toc-children">')
        parts.extend(_render_entry(child, ctx) for child in entry.children)
        parts.append('</ul>')
    parts.append('</li>')
    return '\n'.join(parts)


def render_toc(entries, ctx, collapsed: bool = False) -> str:
    """Render the floating "Contents" box, or '' when there is nothing to list."""
    numbered = number_entries(entries)
    if not numbered:
        return ''

    open_attr = '' if collapsed else ' open'
    lines = [
        '<div class="toc" id="toc">',
        f'<details{open_attr}>',
        '<summary>Contents</summary>',
        '<ul>',
    ]
    lines.extend(_render_entry(entry, ctx) for entry in numbered)
    lines.extend(['</ul>', '</details>', '</div>'])
    return '\n'.join(lines)
