"""
Unit tests for the shared layout components.

Usage:
  python -m pytest tests/test_components.py -v
"""

import sys
import os
from datetime import date

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from components import (
    LinkContext,
    bitfield,
    breadcrumbs,
    coerce_to_list,
    cpuid,
    date_time,
    link,
    nav_bar,
    register,
    ref,
    references,
    web_citation,
)


CITATION = {
    'type': 'web',
    'author': ['Jane Doe', 'John Roe'],
    'date': date(2020, 5, 17),
    'title': 'Intel 8086',
    'url': 'https://example.com/8086',
    'website': 'Example',
    'access_date': date(2023, 1, 2),
    'archive': {'url': 'https://web.archive.org/x', 'date': date(2023, 1, 3)},
}


# =============================================================================
#  LINKS
# =============================================================================

def test_link_known_internal_route():
    """An internal link to a known route is a plain anchor."""
    ctx = LinkContext(pages={'/register'})
    assert link('/register', 'Registers', ctx) == '<a href="/register">Registers</a>'
    assert ctx.broken == []

def test_link_fragment_is_ignored_when_checking():
    """The route is checked without its #fragment."""
    ctx = LinkContext(pages={'/instruction/help'})
    out = link('/instruction/help#headingExceptionsVex4', 'Type 4', ctx)
    assert 'broken-link' not in out

def test_link_missing_internal_route():
    """A link to an unknown route is flagged and recorded."""
    ctx = LinkContext(pages={'/'})
    out = link('/mode', 'Modes', ctx, classes='nav-item')
    assert out == '<a href="/mode" class="nav-item broken-link">Modes</a>'
    assert ctx.broken == ['/mode']

def test_link_same_page_and_external():
    """Fragment links are never checked; other links are external."""
    ctx = LinkContext()
    assert link('#toc', 'Top', ctx) == '<a href="#toc">Top</a>'
    assert 'rel="external"' in link('https://intel.com', 'Intel', ctx)
    assert ctx.broken == []

def test_coerce_to_list():
    assert coerce_to_list(None) == []
    assert coerce_to_list('a') == ['a']
    assert coerce_to_list(['a', 'b']) == ['a', 'b']


# =============================================================================
#  BREADCRUMBS AND NAVIGATION
# =============================================================================

def test_breadcrumbs_current_page():
    """The trail starts at home; an item without href is the current page."""
    ctx = LinkContext(pages={'/', '/register'})
    out = breadcrumbs([{'href': '/register', 'text': 'Registers'}, {'text': 'Control <CR>'}], ctx)
    assert '<span aria-label="home">Home</span>' in out
    assert '<li><a href="/register">Registers</a></li>' in out
    assert '<li aria-current="page">Control &lt;CR&gt;</li>' in out
    assert ctx.broken == []

def test_nav_bar_marks_active_group():
    """Only the item of the page's group is marked current."""
    ctx = LinkContext(pages={'/', '/about'})
    navigation = [
        {'name': 'Arch86', 'href': '/', 'group': 'home'},
        {'name': 'About', 'href': '/about', 'group': 'about'},
    ]
    out = nav_bar('about', navigation, ctx)
    assert '<a aria-current="page" href="/about" class="nav-item-active">About</a>' in out
    assert '<a href="/" class="nav-item">Arch86</a>' in out
    assert out.count('aria-current') == 1


# =============================================================================
#  BIT FIELDS
# =============================================================================

def test_bitfield_header_and_cells():
    """One header cell per bit, counting down; fields span their width."""
    out = bitfield(8, [{'bits': 4, 'reserved': True}, {'bits': 3, 'name': 'TPR'}, {'bits': 1, 'name': 'E'}])
    assert out.count('<th>') == 8
    assert out.index('<th>7</th>') < out.index('<th>0</th>')
    assert '<td colspan="4" class="bitfield-reserved">Reserved</td>' in out
    assert '<td colspan="3">TPR</td>' in out

def test_bitfield_width_mismatch():
    """Field widths must cover the register exactly."""
    with pytest.raises(ValueError):
        bitfield(8, [{'bits': 4, 'name': 'LOW'}])

def test_bitfield_bad_size():
    with pytest.raises(ValueError):
        bitfield(0, [])


# =============================================================================
#  DATES AND CITATIONS
# =============================================================================

def test_date_time_from_date():
    """Dates keep their written form and get a machine-readable attribute."""
    assert date_time(date(2023, 1, 2)) == '<time class="nowrap" datetime="2023-01-02">2023-01-02</time>'

def test_date_time_from_string():
    out = date_time('2023-01-02T03:04:05', text='today')
    assert 'datetime="2023-01-02T03:04:05"' in out
    assert '>today</time>' in out

def test_date_time_invalid():
    with pytest.raises(ValueError):
        date_time('yesterday')

def test_web_citation_fields():
    """Authors, title link, website, retrieval and archive all appear."""
    out = web_citation(CITATION)
    assert out.startswith('<span>Jane Doe, John Roe')
    assert '<a href="https://example.com/8086" rel="external">Intel 8086</a>' in out
    assert '<i>Example</i>' in out
    assert 'Retrieved <time' in out
    assert '<a href="https://web.archive.org/x" rel="external">Archived</a>' in out

def test_web_citation_requires_access_date():
    with pytest.raises(ValueError):
        web_citation({'type': 'web', 'title': 'No date'})

def test_web_citation_archive_needs_url_and_date():
    for archive in ({'url': 'https://web.archive.org/x'}, {'date': date(2023, 1, 3)}, 'https://web.archive.org/x'):
        with pytest.raises(ValueError, match='Archive'):
            web_citation(dict(CITATION, archive=archive))

def test_references_list():
    """Each citation gets an anchor the inline refs link to."""
    out = references({'intel8086': CITATION})
    assert out.startswith('<h2 id="headingReferences">References</h2>')
    assert '<li id="ref-intel8086"><code>[intel8086]</code> - ' in out
    assert not references({'intel8086': CITATION}, no_heading=True).startswith('<h2')
    assert references({}) == ''

def test_references_unsupported_type():
    with pytest.raises(ValueError):
        references({'book': {'type': 'book', 'title': 'x'}})

def test_references_entry_must_be_mapping():
    with pytest.raises(ValueError, match='mapping'):
        references({'intel8086': 'Intel 8086 manual'})

def test_ref_links_to_citation():
    ctx = LinkContext(citations={'intel8086': CITATION})
    assert ref('intel8086', ctx) == '<sup class="nowrap"><a href="#ref-intel8086">[intel8086]</a></sup>'

def test_ref_unknown_key():
    with pytest.raises(ValueError):
        ref('missing', LinkContext())


# =============================================================================
#  CPUID
# =============================================================================

def test_cpuid_leaf_and_subleaf():
    """Leaf values above 9 are written in hex with an h suffix."""
    assert cpuid(7, 'ebx', 19, ecx=0, feature_id='adx') == (
        '<code class="nowrap">CPUID[EAX=7,ECX=0]:EBX[bit 19 (ADX)]</code>'
    )
    assert 'EAX=80000001h' in cpuid(0x80000001, 'ecx', 0, feature_id='lahf')
    assert '[bits 4:7]' in cpuid(1, 'eax', 4, bit_end=7)

def test_cpuid_bad_register():
    with pytest.raises(ValueError):
        cpuid(1, 'esi', 0)

def test_register_name():
    assert register('CR8') == '<code>CR8</code>'
