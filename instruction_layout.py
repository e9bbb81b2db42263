"""
Instruction page layout.

An instruction page is a YAML mapping. Besides ``title`` it carries:

    id            mnemonic slug, e.g. ``aesimc``
    opcodes       list of {opcode, mnemonic, encoding, validity{16,32,64},
                  cpuid?, description}
    opcode_notes  optional note(s) shown under the opcode table
    encodings     {operands: N, has_tuple?: bool, encodings: {name: [...]}}
    description   markdown
    operation     pseudo-code shown verbatim
    operation_notes, examples, flags, intrinsics, exceptions, citations

Text fields use inline markdown (``*xmm1*`` for operand placeholders).
"""

import html
from collections import defaultdict

from components import LinkContext, breadcrumbs, coerce_to_list, cpuid, link, references, register
from markdown_html import inline_html, markdown_to_html
from toc import render_toc, toc_from_headings


VALIDITY_CELLS = {
    'valid': ('validity-valid', 'Valid'),
    'valid*': ('validity-valid', 'Valid*'),
    'invalid': ('validity-invalid', 'Invalid'),
    'n/e': ('validity-invalid', '<abbr title="Not Encodable">N/E</abbr>'),
    'n/p': ('validity-partial', '<abbr title="Not Prefixable">N/P</abbr>'),
    'n/s': ('validity-partial', '<abbr title="Not Supported">N/S</abbr>'),
}

MODES = (16, 32, 64)

# Display order of the "Flags Affected" list
FLAGS = [
    ('CF', 'carry flag'),
    ('PF', 'parity flag'),
    ('AF', 'auxiliary flag'),
    ('ZF', 'zero flag'),
    ('SF', 'sign flag'),
    ('TF', 'trap flag'),
    ('IF', 'interrupt enable flag'),
    ('DF', 'direction flag'),
    ('OF', 'overflow flag'),
    ('NT', 'nested task flag'),
    ('RF', 'resume flag'),
    ('VM', 'virtual-8086 mode'),
    ('AC', 'alignment check flag'),
    ('VIF', 'virtual interrupt flag'),
    ('VIP', 'virtual interrupt pending'),
    ('ID', 'identification flag'),
]

# NMI (2) and CSO (9) are left out; 15, 22-27 and 31 are reserved
EXCEPTIONS = {
    'DE': ('Divide-by-Zero Error', '#DE'),
    'DB': ('Debug Exception', '#DB'),
    'BP': ('Breakpoint', '#BP'),
    'OF': ('Overflow', '#OF'),
    'BR': ('BOUND Range Exceeded', '#BR'),
    'UD': ('Invalid/Undefined Opcode', '#UD'),
    'NM': ('Device Not Available / No Math Coprocessor', '#NM'),
    'DF0': ('Double Fault', '#DF(0)'),
    'TSSel': ('Invalid TSS', '#TS(sel)'),
    'NPSel': ('Segment Not Present', '#NP(sel)'),
    'SS0': ('Stack Segment', '#SS(0)'),
    'SSSel': ('Stack Segment Selector Not "Present"', '#SS(sel)'),
    'GP0': ('General Protection Fault', '#GP(0)'),
    'GPSel': ('General Protection Fault', '#GP(sel)'),
    'PF': ('Page Fault', '#PF(fc)'),
    'MF': ('FPU Floating Point Error / Math Fault', '#MF'),
    'AC0': ('Alignment Check Fault', '#AC(0)'),
    'MC': ('Machine Check', '#MC'),
    'XM': ('SIMD Floating Point Exception', '#XM'),
    'VE': ('Virtualization Exception (VT)', '#VE'),
    'CP': ('Control Protection Exception (CET)', '#CP'),
    'HV': ('Hypervisor Injection Exception (SVM)', '#HV'),
    'VC': ('VMM Communication Exception (SVM)', '#VC'),
    'SX': ('Security Exception (SVM)', '#SX'),
}

EXCEPTION_MODES = [
    ('real', 'Real-Address Mode'),
    ('virtual', 'Virtual-8086 Mode'),
    ('protected', 'Protected Mode'),
    ('compatibility', 'Compatibility Mode'),
    ('long', 'Long Mode'),
]

SIMD_EXCEPTIONS = {
    'invalid': 'Invalid',
    'divide-by-0': 'Divide-by-Zero',
    'denormal': 'Denormal',
    'overflow': 'Overflow',
    'underflow': 'Underflow',
    'precision': 'Precision',
}

VEX_TYPES = {'1', '2', '3', '4', '5', '6', '7', '8', '11', '12', '13'}
EVEX_TYPES = {
    'e1', 'e1nf', 'e2', 'e3', 'e3nf', 'e4', 'e4nf', 'e5', 'e5nf', 'e6', 'e6nf',
    'e7nm', 'e9', 'e9nf', 'e10', 'e10nf', 'e11', 'e12', 'e12np', 'k20', 'k21',
}


def plural(count: int, singular: str, many: str) -> str:
    return singular if count == 1 else many


def exception_abbr(name: str) -> str:
    if name not in EXCEPTIONS:
        raise ValueError(f"Unknown exception: {name}")
    title, label = EXCEPTIONS[name]
    return f'<abbr title="{html.escape(title)}">{label}</abbr>'


def _mapping(value, what: str) -> dict:
    """``value`` as a mapping; a missing value is an empty one."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{what} must be a mapping, got {type(value).__name__}")
    return value


def _opcode_rows(opcodes) -> list[dict]:
    if opcodes is None:
        return []
    if not isinstance(opcodes, list):
        raise ValueError(f"opcodes must be a list, got {type(opcodes).__name__}")
    return [_mapping(row, f"Opcode {idx}") for idx, row in enumerate(opcodes, start=1)]


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

def _validity_cell(value) -> str:
    if value not in VALIDITY_CELLS:
        raise ValueError(f"Unknown opcode validity: {value!r}")
    css, label = VALIDITY_CELLS[value]
    return f'<td class="{css}">{label}</td>'


def _cpuid_list(features) -> str:
    # a mapping spells out the CPUID bit; a plain string is just the feature name
    items = []
    for feature in features:
        if isinstance(feature, dict):
            items.append(cpuid(**feature))
        else:
            items.append(f'<code>{html.escape(str(feature))}</code>')
    return '<br>'.join(items)


def _opcode_table(opcodes, ctx: LinkContext) -> str:
    opcodes = _opcode_rows(opcodes)
    if not opcodes:
        raise ValueError("Instruction has no opcodes")

    has_cpuid = any(row.get('cpuid') for row in opcodes)
    lines = [
        '<div class="scrollable">',
        '<table class="instruction-overview">',
        '<thead><tr>',
        '<th>Opcode</th>',
        f'<th>{link("#headingEncoding", "Encoding", ctx)}</th>',
    ]
    lines.extend(f'<th>{mode}-bit</th>' for mode in MODES)
    if has_cpuid:
        lines.append('<th><code>CPUID</code> Feature Flag(s)</th>')
    lines.append('<th>Description</th>')
    lines.append('</tr></thead>')
    lines.append('<tbody>')

    for row in opcodes:
        validity = _mapping(row.get('validity'), 'validity')
        cells = [
            '<td class="opcode">'
            f'<code>{inline_html(str(row["opcode"]), ctx)}</code><hr>'
            f'<code>{inline_html(str(row["mnemonic"]), ctx)}</code></td>',
            f'<td class="center"><code>{html.escape(str(row.get("encoding", "")))}</code></td>',
        ]
        cells.extend(_validity_cell(validity.get(mode)) for mode in MODES)
        if has_cpuid:
            cells.append(f'<td class="center">{_cpuid_list(coerce_to_list(row.get("cpuid")))}</td>')
        cells.append(f'<td>{inline_html(str(row.get("description", "")), ctx)}</td>')
        lines.append('<tr>' + ''.join(cells) + '</tr>')

    lines.extend(['</tbody>', '</table>', '</div>'])
    return '\n'.join(lines)


def _note_list(notes, ctx: LinkContext, tag: str = 'ul') -> str:
    items = ''.join(f'<li>{inline_html(str(note), ctx)}</li>' for note in coerce_to_list(notes))
    return f'<{tag}>{items}</{tag}>'


def _encoding_table(encodings) -> str:
    encodings = _mapping(encodings, 'encodings')
    operands = int(encodings.get('operands', 0))
    has_tuple = bool(encodings.get('has_tuple'))

    header = ['<th>Encoding</th>']
    if has_tuple:
        header.append('<th>Tuple Type</th>')
    if operands == 1:
        header.append('<th>Operand</th>')
    else:
        header.extend(f'<th>Operand {i + 1}</th>' for i in range(operands))

    rows = []
    for name, cells in _mapping(encodings.get('encodings'), 'encodings.encodings').items():
        row = [f'<td><code>{html.escape(str(name))}</code></td>']
        for idx, operand in enumerate(coerce_to_list(cells)):
            operand = str(operand)
            # empty, "None" and tuple type cells are plain text
            if operand == '' or operand.startswith('None') or (has_tuple and idx == 0):
                row.append(f'<td>{html.escape(operand)}</td>')
            else:
                row.append(f'<td><code>{html.escape(operand)}</code></td>')
        rows.append('<tr>' + ''.join(row) + '</tr>')

    return '\n'.join([
        '<h2 id="headingEncoding">Encoding</h2>',
        '<table class="instruction-table">',
        f'<thead><tr>{"".join(header)}</tr></thead>',
        '<tbody>',
        *rows,
        '</tbody>',
        '</table>',
    ])


def _flags(flags, ctx: LinkContext) -> str:
    flags = _mapping(flags, 'flags')
    entries = []
    for name, description in FLAGS:
        text = flags.get(name)
        if not text:
            continue
        entries.append(f'<dt>{register(name)} ({description})</dt>')
        entries.append(f'<dd>{inline_html(str(text), ctx)}</dd>')
    return '<h2 id="headingFlags">Flags Affected</h2>\n<dl>\n' + '\n'.join(entries) + '\n</dl>'


def _intrinsics(intrinsics) -> str:
    heading = '<h2 id="headingIntrinsics">Intrinsics</h2>'
    if intrinsics == 'autogen':
        return heading + '\n<p>None. Auto-generated by compiler.</p>'
    body = html.escape('\n'.join(coerce_to_list(intrinsics)))
    return f'{heading}\n<pre><code class="language-c">{body}</code></pre>'


def _exception_list(exceptions: dict, ctx: LinkContext) -> str:
    items = []
    for name, descriptions in exceptions.items():
        items.append(f'<dt><code>{exception_abbr(name)}</code></dt>')
        lis = ''.join(f'<li>{inline_html(str(d), ctx)}</li>' for d in coerce_to_list(descriptions))
        items.append(f'<dd><ul>{lis}</ul></dd>')
    return '<dl>\n' + '\n'.join(items) + '\n</dl>'


def _other_exceptions(other: dict, ctx: LinkContext) -> str:
    rest = {k: v for k, v in other.items() if k not in ('vex', 'evex')}
    encoded = []

    vex = other.get('vex')
    if vex is not None:
        vex = str(vex).upper()
        href = f'/instruction/help#headingExceptionsVex{vex}'
        encoded.append(f'VEX Encoded Form: See {link(href, f"Type {vex} Exception Conditions", ctx)}.')

    evex = other.get('evex')
    if evex is not None:
        evex = str(evex).upper()
        href = f'/instruction/help#headingExceptionsEvex{evex}'
        encoded.append(f'EVEX Encoded Form: See {link(href, f"Type {evex} Exception Conditions", ctx)}.')

    parts = []
    if encoded:
        parts.append('<p>' + '<br>'.join(encoded) + '</p>')
    if rest:
        parts.append(_exception_list(rest, ctx))
    return '\n'.join(parts)


def _exceptions(exceptions, ctx: LinkContext) -> str:
    exceptions = _mapping(exceptions, 'exceptions')
    parts = ['<h2 id="headingExceptions">Exceptions</h2>']

    for key, label in EXCEPTION_MODES:
        if key in exceptions:
            anchor = 'headingExceptions' + key.capitalize()
            parts.append(f'<h3 id="{anchor}">{label}</h3>')
            parts.append(_exception_list(_mapping(exceptions[key], f'exceptions.{key}'), ctx))

    if 'simd' in exceptions:
        parts.append('<h3 id="headingExceptionsSimd">SIMD Floating-Point</h3>')
        simd = coerce_to_list(exceptions['simd'])
        if simd == ['none']:
            parts.append('<p>None.</p>')
        else:
            unknown = [s for s in simd if s not in SIMD_EXCEPTIONS]
            if unknown:
                raise ValueError(f"Unknown SIMD exception(s): {unknown}")
            names = ', '.join(SIMD_EXCEPTIONS[s] for s in simd)
            parts.append(f'<p>{exception_abbr("XM")}: {names}.</p>')

    if 'other' in exceptions:
        parts.append('<h3 id="headingExceptionsOther">Other Exceptions</h3>')
        parts.append(_other_exceptions(_mapping(exceptions['other'], 'exceptions.other'), ctx))

    return '\n'.join(parts)


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------

def render_instruction(page: dict, ctx: LinkContext) -> str:
    """Render the body of an instruction page."""
    title_html = inline_html(str(page['title']), ctx)
    sections = []

    if page.get('wip'):
        sections.append(
            '<div class="wip">This page is a work in progress and may be incomplete.</div>'
        )

    sections.append(_opcode_table(page.get('opcodes'), ctx))
    if page.get('opcode_notes'):
        sections.append('<h5>Notes:</h5>')
        sections.append(_note_list(page['opcode_notes'], ctx))

    sections.append(_encoding_table(page.get('encodings')))
    sections.append('<div class="clear"></div>')

    sections.append('<h2 id="headingDescription">Description</h2>')
    sections.append(markdown_to_html(str(page.get('description', '')), ctx))

    sections.append('<h2 id="headingOperation">Operation</h2>')
    operation = html.escape(str(page.get('operation', '')).rstrip())
    sections.append(f'<pre><code class="language-csharp">{operation}</code></pre>')
    if page.get('operation_notes'):
        sections.append('<h3 id="headingOperationNotes">Notes</h3>')
        sections.append(_note_list(page['operation_notes'], ctx, tag='ol'))

    if page.get('examples'):
        examples = coerce_to_list(page['examples'])
        sections.append(f'<h2 id="headingExamples">{plural(len(examples), "Example", "Examples")}</h2>')
        for example in examples:
            sections.append(f'<pre><code class="language-x86asm">{html.escape(str(example).rstrip())}</code></pre>')

    if page.get('flags'):
        sections.append(_flags(page['flags'], ctx))

    if page.get('intrinsics'):
        sections.append(_intrinsics(page['intrinsics']))

    if page.get('exceptions'):
        sections.append(_exceptions(page['exceptions'], ctx))

    if ctx.citations:
        sections.append(references(ctx.citations))

    content = '\n'.join(sections)
    toc = render_toc(toc_from_headings(content), ctx, collapsed=True)
    crumbs = breadcrumbs([
        {'href': '/instruction', 'text': 'Instructions'},
        {'html': title_html},
    ], ctx)

    return '\n'.join(part for part in (crumbs, '<div class="content">', toc, content, '</div>') if part)


def validate_instruction(page: dict) -> list[str]:
    """Check an instruction page's tables for values the layout cannot show."""
    issues = []

    if not page.get('id'):
        issues.append("Missing id")
    if not page.get('operation'):
        issues.append("Missing operation")

    # the table checks below need the right shapes; a wrong one is the only issue reported
    try:
        encodings = _mapping(_mapping(page.get('encodings'), 'encodings').get('encodings'),
                             'encodings.encodings')
        opcodes = _opcode_rows(page.get('opcodes'))
        validities = [_mapping(row.get('validity'), f"Opcode {idx}: validity")
                      for idx, row in enumerate(opcodes, start=1)]
        _mapping(page.get('flags'), 'flags')
        exceptions = _mapping(page.get('exceptions'), 'exceptions')
        modes = {key: _mapping(exceptions.get(key), f'exceptions.{key}') for key, _ in EXCEPTION_MODES}
        other = _mapping(exceptions.get('other'), 'exceptions.other')
    except ValueError as e:
        issues.append(str(e))
        return issues

    if not opcodes:
        issues.append("No opcodes")

    for idx, (row, validity) in enumerate(zip(opcodes, validities), start=1):
        for key in ('opcode', 'mnemonic', 'encoding'):
            if not row.get(key):
                issues.append(f"Opcode {idx}: Missing {key}")
        if row.get('encoding') and row['encoding'] not in encodings:
            issues.append(f"Opcode {idx}: Encoding '{row['encoding']}' is not in the encoding table")
        for mode in MODES:
            if validity.get(mode) not in VALIDITY_CELLS:
                issues.append(f"Opcode {idx}: Invalid {mode}-bit validity: {validity.get(mode)!r}")

    for key, names in modes.items():
        for name in names:
            if name not in EXCEPTIONS:
                issues.append(f"Unknown exception in {key} mode: {name}")
    for name in other:
        if name not in ('vex', 'evex') and name not in EXCEPTIONS:
            issues.append(f"Unknown exception in other: {name}")
    if 'vex' in other and str(other['vex']) not in VEX_TYPES:
        issues.append(f"Unknown VEX exception type: {other['vex']}")
    if 'evex' in other and str(other['evex']).lower() not in EVEX_TYPES:
        issues.append(f"Unknown EVEX exception type: {other['evex']}")
    for simd in coerce_to_list(exceptions.get('simd')):
        if simd != 'none' and simd not in SIMD_EXCEPTIONS:
            issues.append(f"Unknown SIMD exception: {simd}")

    return issues


def render_instruction_index(instructions, ctx: LinkContext) -> tuple[str, list[dict]]:
    """
    Render the mnemonic list: every instruction grouped under its first
    letter. ``instructions`` is a list of (route, page) pairs.

    Returns the HTML and the TOC data (letters nested under "Mnemonic
    List") for the caller to number and render.
    """
    by_letter = defaultdict(list)
    for route, page in instructions:
        mnemonic = str(page.get('id') or route.rsplit('/', 1)[-1])
        by_letter[mnemonic[0].upper()].append((mnemonic, route, page))

    toc_entries = [{'href': '#headingList', 'text': 'Mnemonic List', 'children': [
        {'href': f'#headingList{letter}', 'text': letter} for letter in sorted(by_letter)
    ]}]

    sections = ['<h2 id="headingList">Mnemonic List</h2>']
    for letter in sorted(by_letter):
        sections.append(f'<h3 id="headingList{letter}">{letter}</h3>')
        sections.append('<ul>')
        for mnemonic, route, page in sorted(by_letter[letter], key=lambda item: item[0]):
            label = f'<code>{html.escape(mnemonic.upper())}</code>'
            title = inline_html(str(page['title']), ctx)
            sections.append(f'<li>{link(route, label, ctx)} - {title}</li>')
        sections.append('</ul>')

    return '\n'.join(sections), toc_entries
