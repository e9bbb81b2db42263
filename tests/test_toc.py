"""
Unit tests for table of contents numbering and rendering.

Usage:
  python -m pytest tests/test_toc.py -v
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from components import LinkContext
from toc import TocEntry, entry_from_data, number_entries, render_toc, toc_from_headings


# =============================================================================
#  NUMBERING
# =============================================================================

def test_number_entries_skips_non_entries():
    """Nulls and strings are dropped and do not take up a number."""
    entries = [None, TocEntry('#a', 'A'), 'stray', None, TocEntry('#b', 'B'), TocEntry('#c', 'C')]
    numbered = number_entries(entries)
    assert [e.text for e in numbered] == ['A', 'B', 'C']
    assert [e.index for e in numbered] == [1, 2, 3]

def test_number_entries_empty():
    """Empty or missing input gives an empty list."""
    assert number_entries([]) == []
    assert number_entries(None) == []
    assert number_entries([None, None]) == []

def test_number_entries_restarts_per_level():
    """Each nesting level is numbered from 1 independently."""
    entries = [
        TocEntry('#a', 'A', children=[TocEntry('#a1', 'A1'), None, TocEntry('#a2', 'A2')]),
        TocEntry('#b', 'B', children=[TocEntry('#b1', 'B1')]),
    ]
    numbered = number_entries(entries)
    assert [c.index for c in numbered[0].children] == [1, 2]
    assert [c.text for c in numbered[0].children] == ['A1', 'A2']
    assert numbered[1].index == 2
    assert numbered[1].children[0].index == 1

def test_number_entries_is_idempotent():
    """Numbering twice gives the same labels as numbering once."""
    entries = [None, TocEntry('#a', 'A', children=[None, TocEntry('#a1', 'A1')]), TocEntry('#b', 'B')]
    once = number_entries(entries)
    assert number_entries(once) == once

def test_number_entries_overrides_stale_labels():
    """Labels come from position, not from whatever index was already set."""
    numbered = number_entries([TocEntry('#a', 'A', index=7), TocEntry('#b', 'B', index=1)])
    assert [e.index for e in numbered] == [1, 2]

def test_number_entries_leaves_input_untouched():
    """The original entries keep their index."""
    entry = TocEntry('#a', 'A')
    number_entries([entry])
    assert entry.index is None


# =============================================================================
#  FRONTMATTER DATA
# =============================================================================

def test_entry_from_data_nested():
    """Mappings become entries; non-mappings become None."""
    entry = entry_from_data({'href': '#a', 'text': 'A', 'children': [{'href': '#b', 'text': 'B'}, None]})
    assert entry.href == '#a'
    assert entry.children[0].text == 'B'
    assert entry.children[1] is None
    assert entry_from_data(None) is None
    assert entry_from_data('text') is None

def test_entry_from_data_requires_href_and_text():
    """A mapping without text is a data error."""
    with pytest.raises(ValueError):
        entry_from_data({'href': '#a'})


# =============================================================================
#  HEADINGS
# =============================================================================

def test_toc_from_headings_nests_h3_under_h2():
    """h3 headings become children of the preceding h2."""
    fragment = (
        '<h2 id="headingOne">One</h2><p>x</p>'
        '<h3 id="headingSub">Sub <code>A</code></h3>'
        '<h2 id="headingTwo">Two &amp; Three</h2>'
        '<h4 id="headingDeep">Deep</h4>'
    )
    entries = toc_from_headings(fragment)
    assert [e.href for e in entries] == ['#headingOne', '#headingTwo']
    assert entries[0].children[0].text == 'Sub A'
    assert entries[1].text == 'Two & Three'
    assert entries[1].children == []

def test_toc_from_headings_promotes_orphan_h3():
    """An h3 before any h2 is listed at the top level."""
    entries = toc_from_headings('<h3 id="x">X</h3><h2 id="y">Y</h2>')
    assert [e.text for e in entries] == ['X', 'Y']

def test_toc_from_headings_ignores_headings_without_id():
    """Only headings that can be linked to are listed."""
    assert toc_from_headings('<h2>Plain</h2>') == []


# =============================================================================
#  RENDERING
# =============================================================================

def test_render_toc_labels_and_nesting():
    """Rendered items carry their number; children render in a nested list."""
    ctx = LinkContext()
    entries = [None, TocEntry('#a', 'A', children=[TocEntry('#a1', 'A1')]), TocEntry('#b', 'B')]
    out = render_toc(entries, ctx)
    assert '<details open>' in out
    assert '<li>1. <a href="#a">A</a>' in out
    assert '<li>1. <a href="#a1">A1</a>' in out
    assert '<li>2. <a href="#b">B</a>' in out
    assert out.count('<ul class="toc-children">') == 1

def test_render_toc_collapsed():
    """A collapsed TOC starts closed."""
    out = render_toc([TocEntry('#a', 'A')], LinkContext(), collapsed=True)
    assert '<details>' in out

def test_render_toc_empty():
    """Nothing to list renders nothing."""
    assert render_toc([None], LinkContext()) == ''
