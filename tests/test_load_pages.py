"""
Unit tests for page and site settings loading.

Usage:
  python -m pytest tests/test_load_pages.py -v
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from load_pages import (
    DEFAULT_SITE,
    extract_frontmatter,
    load_page,
    load_site_config,
    validate_page,
)


# =============================================================================
#  FRONTMATTER
# =============================================================================

def test_extract_frontmatter():
    meta, body = extract_frontmatter('---\ntitle: Registers\ntoc: auto\n---\n# Body\n')
    assert meta == {'title': 'Registers', 'toc': 'auto'}
    assert body == '# Body\n'

def test_extract_frontmatter_absent():
    """A document without frontmatter is all body."""
    assert extract_frontmatter('just text') == ({}, 'just text')

def test_extract_frontmatter_invalid_yaml():
    with pytest.raises(ValueError):
        extract_frontmatter('---\ntitle: [unclosed\n---\nbody')

def test_extract_frontmatter_not_a_mapping():
    with pytest.raises(ValueError):
        extract_frontmatter('---\n- a\n- b\n---\nbody')

def test_extract_frontmatter_empty_block():
    """An empty block is still frontmatter and is not left in the body."""
    assert extract_frontmatter('---\n---\nbody\n') == ({}, 'body\n')

def test_extract_frontmatter_without_body():
    assert extract_frontmatter('---\ntitle: 404\n---') == ({'title': 404}, '')


# =============================================================================
#  PAGES
# =============================================================================

def test_load_markdown_page(tmp_path):
    path = tmp_path / 'page.md'
    path.write_text('---\ntitle: About\n---\nHello\n', encoding='utf-8')
    page = load_page(path)
    assert page['title'] == 'About'
    assert page['layout'] == 'page'
    assert page['format'] == 'markdown'
    assert page['body'] == 'Hello\n'
    assert page['source'] == str(path)

def test_load_yaml_page(tmp_path):
    """YAML pages keep their own layout and have no body."""
    path = tmp_path / 'page.yaml'
    path.write_text('id: aam\ntitle: ASCII Adjust\nlayout: instruction\n', encoding='utf-8')
    page = load_page(path)
    assert page['layout'] == 'instruction'
    assert page['format'] == 'yaml'
    assert page['body'] == ''

def test_yaml_page_defaults_to_instruction_layout(tmp_path):
    """A YAML page without a layout key is an instruction page."""
    path = tmp_path / 'page.yaml'
    path.write_text('id: clac\ntitle: Clear AC Flag\n', encoding='utf-8')
    assert load_page(path)['layout'] == 'instruction'

def test_empty_frontmatter_reports_missing_title(tmp_path):
    path = tmp_path / 'page.md'
    path.write_text('---\n---\nHello\n', encoding='utf-8')
    with pytest.raises(ValueError, match='no title'):
        load_page(path)

def test_load_page_needs_title(tmp_path):
    path = tmp_path / 'page.md'
    path.write_text('---\nnav_group: home\n---\nHello\n', encoding='utf-8')
    with pytest.raises(ValueError, match='no title'):
        load_page(path)

def test_load_yaml_page_not_a_mapping(tmp_path):
    path = tmp_path / 'page.yaml'
    path.write_text('- one\n- two\n', encoding='utf-8')
    with pytest.raises(ValueError):
        load_page(path)


# =============================================================================
#  SITE SETTINGS
# =============================================================================

def test_site_config_defaults(tmp_path):
    """Without layout.yaml the built-in settings apply, as a copy."""
    site = load_site_config(tmp_path)
    assert site == DEFAULT_SITE
    site['navigation'].clear()
    assert DEFAULT_SITE['navigation']

def test_site_config_override(tmp_path):
    (tmp_path / 'layout.yaml').write_text('name: Test\nbase_url: http://localhost\n', encoding='utf-8')
    site = load_site_config(tmp_path)
    assert site['name'] == 'Test'
    assert site['base_url'] == 'http://localhost'
    assert site['title_template'] == DEFAULT_SITE['title_template']

def test_site_config_title_template_needs_placeholder(tmp_path):
    (tmp_path / 'layout.yaml').write_text('title_template: Arch86\n', encoding='utf-8')
    with pytest.raises(ValueError):
        load_site_config(tmp_path)


# =============================================================================
#  VALIDATION
# =============================================================================

def test_validate_page_clean():
    page = {'title': 'About', 'layout': 'page', 'body': 'text', 'source': 'about.md'}
    assert validate_page(page) == []

def test_validate_page_issues():
    page = {'title': 'About', 'layout': 'sidebar', 'toc': 'yes', 'source': 'about.md'}
    issues = validate_page(page)
    assert 'about.md: Unknown layout: sidebar' in issues
    assert "about.md: toc must be a list or 'auto'" in issues

def test_validate_instruction_page_is_checked():
    page = {'title': 'X', 'layout': 'instruction', 'source': 'x.yaml'}
    issues = validate_page(page)
    assert 'x.yaml: Missing id' in issues
    assert 'x.yaml: No opcodes' in issues
