"""
Shared layout components for Arch86 pages.

Every component returns an HTML string. Components that emit links take a
LinkContext so internal links can be checked against the page manifest and
broken ones collected for the end-of-build report.
"""

import html
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any


@dataclass
class LinkContext:
    """Per-page rendering state shared by the components."""
    pages: set[str] = field(default_factory=set)
    broken: list[str] = field(default_factory=list)
    citations: dict[str, dict] = field(default_factory=dict)
    bitfields: dict[str, dict] = field(default_factory=dict)
    route: str = ''


def coerce_to_list(value: Any) -> list:
    """Wrap a single value in a list; None becomes an empty list."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _class_attr(classes: list[str]) -> str:
    return f' class="{" ".join(classes)}"' if classes else ''


def link(href: str, label: str, ctx: LinkContext, classes=None) -> str:
    """
    Render an anchor. ``label`` is already HTML.

    Links starting with ``#`` stay on the page. Links starting with ``/``
    are internal: when the path (fragment removed) is not a known route the
    link is flagged with ``broken-link`` and recorded in ``ctx.broken``.
    Everything else is treated as external.
    """
    classes = list(coerce_to_list(classes))
    href_attr = html.escape(href, quote=True)

    if href.startswith('#'):
        return f'<a href="{href_attr}"{_class_attr(classes)}>{label}</a>'

    if href.startswith('/'):
        path = href.split('#')[0]
        if path not in ctx.pages:
            classes.append('broken-link')
            ctx.broken.append(href)
        return f'<a href="{href_attr}"{_class_attr(classes)}>{label}</a>'

    return f'<a href="{href_attr}"{_class_attr(classes)} rel="external">{label}</a>'


def breadcrumbs(items, ctx: LinkContext) -> str:
    """
    Render the breadcrumb trail. ``items`` is a list of mappings with
    ``text`` and an optional ``href``; the last item is usually the
    current page and has no link.
    """
    home = link('/', '<span aria-label="home">Home</span>', ctx)
    lines = [
        '<nav aria-label="breadcrumb" class="breadcrumbs" id="breadcrumbs">',
        '<ul>',
        f'<li>{home}</li>',
    ]
    for item in items or []:
        text = item.get('html') or html.escape(str(item.get('text', '')))
        href = item.get('href')
        if href:
            lines.append(f'<li>{link(href, text, ctx)}</li>')
        else:
            lines.append(f'<li aria-current="page">{text}</li>')
    lines.extend(['</ul>', '</nav>'])
    return '\n'.join(lines)


# ---------------------------------------------------------------------------
# Bit fields
# ---------------------------------------------------------------------------

def bitfield(bits: int, fields) -> str:
    """
    Render a register bit-field diagram.

    ``fields`` run from the most significant bit down; each has ``bits``
    (its width) and either ``name`` or ``reserved: true``. The widths must
    add up to the register size.
    """
    if not isinstance(bits, int) or bits <= 0:
        raise ValueError(f"Bit field size must be a positive integer, got {bits!r}")

    total = sum(int(f.get('bits', 0)) for f in fields)
    if total != bits:
        raise ValueError(f"Bit field widths add up to {total}, expected {bits}")

    header = ''.join(f'<th>{bits - i - 1}</th>' for i in range(bits))
    cells = []
    for f in fields:
        width = int(f['bits'])
        if f.get('reserved'):
            cells.append(f'<td colspan="{width}" class="bitfield-reserved">Reserved</td>')
        else:
            name = html.escape(str(f.get('name', '')))
            cells.append(f'<td colspan="{width}">{name}</td>')

    return '\n'.join([
        '<div class="scrollable">',
        '<table class="bitfield">',
        f'<thead><tr>{header}</tr></thead>',
        f'<tbody><tr>{"".join(cells)}</tr></tbody>',
        '</table>',
        '</div>',
    ])


# ---------------------------------------------------------------------------
# Dates and citations
# ---------------------------------------------------------------------------

def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        raise ValueError(f"Invalid date: {value!r}") from None


def date_time(value: Any, text: str | None = None) -> str:
    """Render a <time> element; the visible text defaults to the value as written."""
    dt = _parse_datetime(value)
    if isinstance(value, date) and not isinstance(value, datetime):
        iso = value.isoformat()
    else:
        iso = dt.isoformat()
    shown = text if text is not None else str(value)
    return f'<time class="nowrap" datetime="{iso}">{html.escape(shown)}</time>'


def web_citation(data: dict) -> str:
    """Format a web citation: author(s), date, title, website, retrieval and archive info."""
    if not data.get('title'):
        raise ValueError("Web citation needs a title")
    if not data.get('access_date'):
        raise ValueError(f"Web citation '{data['title']}' needs an access_date")

    parts = []
    authors = coerce_to_list(data.get('author'))
    if authors:
        parts.append(html.escape(', '.join(str(a) for a in authors)))
    if data.get('date'):
        parts.append(f" ({date_time(data['date'])})")
    if authors or data.get('date'):
        parts.append('. ')

    title = html.escape(str(data['title']))
    if data.get('url'):
        url = html.escape(data['url'], quote=True)
        parts.append(f'<a href="{url}" rel="external">{title}</a>. ')
    else:
        parts.append(f'"{title}". ')

    if data.get('website'):
        parts.append(f"<i>{html.escape(str(data['website']))}</i> ")

    parts.append(f"Retrieved {date_time(data['access_date'])}. ")

    archive = data.get('archive')
    if archive:
        if not isinstance(archive, dict) or not archive.get('url') or not archive.get('date'):
            raise ValueError(f"Archive of web citation '{data['title']}' needs a url and a date")
        archive_url = html.escape(archive['url'], quote=True)
        parts.append(
            f' <a href="{archive_url}" rel="external">Archived</a> from the original '
            f"on {date_time(archive['date'])}."
        )

    return f"<span>{''.join(parts).rstrip()}</span>"


CITATION_FORMATTERS = {
    'web': web_citation,
}


def references(citations: dict, no_heading: bool = False) -> str:
    """Render the citation list, one ``ref-KEY`` anchored item per citation."""
    if not citations:
        return ''

    items = []
    for key, data in citations.items():
        if not isinstance(data, dict):
            raise ValueError(f"Citation [{key}] must be a mapping")
        formatter = CITATION_FORMATTERS.get(data.get('type'))
        if formatter is None:
            raise ValueError(f"Unsupported citation type for [{key}]: {data.get('type')!r}")
        safe_key = html.escape(str(key))
        items.append(f'<li id="ref-{safe_key}"><code>[{safe_key}]</code> - {formatter(data)}</li>')

    body = '<ul class="references">\n' + '\n'.join(items) + '\n</ul>'
    if no_heading:
        return body
    return '<h2 id="headingReferences">References</h2>\n' + body


def ref(key: str, ctx: LinkContext) -> str:
    """Superscript link to a citation on the same page."""
    if key not in ctx.citations:
        raise ValueError(f"Reference to unknown citation [{key}]")
    safe_key = html.escape(key)
    return f'<sup class="nowrap">{link(f"#ref-{key}", f"[{safe_key}]", ctx)}</sup>'


# ---------------------------------------------------------------------------
# Small inline helpers
# ---------------------------------------------------------------------------

def _hex(value: int) -> str:
    return f"{value:x}h" if value > 9 else str(value)


def cpuid(eax: int, output: str, bit: int, ecx: int | None = None,
          bit_end: int | None = None, feature_id: str | None = None) -> str:
    """Format a CPUID feature bit reference, e.g. CPUID[EAX=7,ECX=0]:EBX[bit 19 (ADX)]."""
    if output.lower() not in ('eax', 'ebx', 'ecx', 'edx'):
        raise ValueError(f"CPUID output must be a register name, got {output!r}")

    leaf = f"EAX={_hex(eax)}"
    if ecx is not None:
        leaf += f",ECX={_hex(ecx)}"
    bits = f"bits {bit}:{bit_end}" if bit_end is not None else f"bit {bit}"
    feature = f" ({feature_id.upper()})" if feature_id else ''
    return f'<code class="nowrap">CPUID[{leaf}]:{output.upper()}[{bits}{feature}]</code>'


def register(name: str) -> str:
    return f'<code>{html.escape(name)}</code>'


def page_header(title_html: str) -> str:
    return f'<header class="page-header"><h1>{title_html}</h1></header>'


def nav_bar(group: str | None, navigation, ctx: LinkContext) -> str:
    """Top navigation; the item whose group matches the page's is marked current."""
    items = []
    for nav in navigation:
        label = html.escape(nav['name'])
        if nav.get('group') == group:
            anchor = link(nav['href'], label, ctx, classes='nav-item-active')
            items.append(anchor.replace('<a ', '<a aria-current="page" ', 1))
        else:
            items.append(link(nav['href'], label, ctx, classes='nav-item'))
    return '<nav class="navbar">\n' + '\n'.join(items) + '\n</nav>'
