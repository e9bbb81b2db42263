"""
Markdown-to-HTML conversion for Arch86 prose.

Handles the subset of markdown used in the page files: headings (with
optional ``{#anchor}`` ids), paragraphs, blockquotes, ordered/unordered
lists, horizontal rules and fenced code blocks. Two block directives hook
into the layout components:

    ::bitfield NAME    diagram declared under ``bitfields.NAME`` in the page
    ::references       the page's citation list

Inline formatting: ``code``, **bold**, *italic*, [links](/route) and
citation references ``[^key]``.
"""

import html
import re

from components import LinkContext, bitfield, link, ref, references


HEADING_RE = re.compile(r'^(#{1,6})\s+(.*?)(?:\s+\{#([A-Za-z][\w-]*)\})?\s*$')
ORDERED_RE = re.compile(r'^\d+\.\s+')
FENCE_RE = re.compile(r'^```\s*([\w+-]*)\s*$')
DIRECTIVE_RE = re.compile(r'^::(\w+)(?:\s+(\S+))?\s*$')

CODE_SPAN_RE = re.compile(r'`([^`]+)`')
LINK_RE = re.compile(r'\[([^\]]+)\]\(([^)\s]+)\)')
REF_RE = re.compile(r'\[\^([\w-]+)\]')
PLACEHOLDER_RE = re.compile(r'\x00(\d+)\x00')


def heading_id(text: str) -> str:
    """Auto anchor for a heading: 'Accessing the Registers' -> 'headingAccessingTheRegisters'."""
    words = re.findall(r'[A-Za-z0-9]+', text)
    return 'heading' + ''.join(w[:1].upper() + w[1:] for w in words)


def inline_html(text: str, ctx: LinkContext) -> str:
    """
    Apply inline formatting.

    Code spans, refs and links are swapped for placeholders before escaping
    so neither the escaping nor the emphasis regexes see their contents.
    Code spans go first and are left verbatim; a link label may contain one.
    """
    rendered = []

    def stash(fragment: str) -> str:
        rendered.append(fragment)
        return f'\x00{len(rendered) - 1}\x00'

    def restore(fragment: str) -> str:
        return PLACEHOLDER_RE.sub(lambda m: rendered[int(m.group(1))], fragment)

    text = CODE_SPAN_RE.sub(lambda m: stash(f'<code>{html.escape(m.group(1))}</code>'), text)
    text = REF_RE.sub(lambda m: stash(ref(m.group(1), ctx)), text)
    text = LINK_RE.sub(
        lambda m: stash(link(m.group(2), restore(_emphasis(html.escape(m.group(1)))), ctx)),
        text,
    )
    return restore(_emphasis(html.escape(text, quote=False)))


def _emphasis(text: str) -> str:
    # Bold must come before italic so **bold** is not eaten by *italic*
    text = re.sub(r'\*\*(.+?)\*\*', r'<strong>\1</strong>', text)
    text = re.sub(r'\*(.+?)\*', r'<em>\1</em>', text)
    return text


def _directive(name: str, arg: str | None, ctx: LinkContext) -> str:
    if name == 'bitfield':
        if not arg or arg not in ctx.bitfields:
            raise ValueError(f"Unknown bit field: {arg!r}")
        diagram = ctx.bitfields[arg]
        return bitfield(diagram.get('bits'), diagram.get('fields') or [])
    if name == 'references':
        return references(ctx.citations)
    raise ValueError(f"Unknown directive: ::{name}")


def markdown_to_html(md: str, ctx: LinkContext) -> str:
    """Convert a markdown page body to an HTML fragment."""
    out = []
    paragraph = []
    quote = []
    list_tag = None
    code_lang = None
    code_lines = []

    def flush_paragraph():
        if paragraph:
            out.append(f"<p>{inline_html(' '.join(paragraph), ctx)}</p>")
            paragraph.clear()

    def flush_quote():
        if quote:
            out.append(f"<blockquote><p>{inline_html(' '.join(quote), ctx)}</p></blockquote>")
            quote.clear()

    def close_list():
        nonlocal list_tag
        if list_tag:
            out.append(f'</{list_tag}>')
            list_tag = None

    def close_blocks():
        flush_paragraph()
        flush_quote()
        close_list()

    for line in md.split('\n'):
        # Inside a fenced code block everything is literal
        if code_lang is not None:
            if line.strip() == '```':
                lang_class = f' class="language-{code_lang}"' if code_lang else ''
                out.append(f'<pre><code{lang_class}>{html.escape(chr(10).join(code_lines))}</code></pre>')
                code_lang = None
                code_lines = []
            else:
                code_lines.append(line)
            continue

        stripped = line.strip()

        fence = FENCE_RE.match(stripped)
        if fence:
            close_blocks()
            code_lang = fence.group(1)
            continue

        heading = HEADING_RE.match(line)
        if heading:
            close_blocks()
            level = len(heading.group(1))
            text = heading.group(2)
            anchor = heading.group(3) or heading_id(text)
            out.append(f'<h{level} id="{anchor}">{inline_html(text, ctx)}</h{level}>')
            continue

        directive = DIRECTIVE_RE.match(stripped)
        if directive:
            close_blocks()
            out.append(_directive(directive.group(1), directive.group(2), ctx))
            continue

        if stripped == '---':
            close_blocks()
            out.append('<hr>')
        elif line.startswith('> ') or stripped == '>':
            flush_paragraph()
            close_list()
            quote.append(line[2:] if line.startswith('> ') else '')
        elif line.startswith(('- ', '* ')):
            flush_paragraph()
            flush_quote()
            if list_tag != 'ul':
                close_list()
                out.append('<ul>')
                list_tag = 'ul'
            out.append(f'<li>{inline_html(line[2:], ctx)}</li>')
        elif ORDERED_RE.match(stripped):
            flush_paragraph()
            flush_quote()
            if list_tag != 'ol':
                close_list()
                out.append('<ol>')
                list_tag = 'ol'
            out.append(f'<li>{inline_html(ORDERED_RE.sub("", stripped), ctx)}</li>')
        elif list_tag and line.startswith('  ') and stripped:
            # continuation of the previous list item
            out[-1] = out[-1][:-len('</li>')] + ' ' + inline_html(stripped, ctx) + '</li>'
        elif not stripped:
            flush_paragraph()
            flush_quote()
            # a blank line between items keeps the list open
        else:
            flush_quote()
            close_list()
            paragraph.append(stripped)

    if code_lang is not None:
        raise ValueError("Unterminated code block")
    close_blocks()

    return '\n'.join(out)
