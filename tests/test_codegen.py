from mite import __version__
from mite.codegen import CodeWriter, ProgramGenerator, render_body
from mite.content import SiteLoader, SiteRenderer
from mite.transpiler import EmitLiteral, RunCode

LAYOUT = "<html><body><? CONTENT() ?></body></html>"


def test_literals_are_written_as_byte_escapes():
    body = render_body([EmitLiteral(b"<p>")])
    assert body == '    emit(out, b"\\x3c\\x70\\x3e", 3)'


def test_loop_block_is_indented_until_end():
    writer = CodeWriter().write(
        [
            EmitLiteral(b"<ul>"),
            RunCode("for p in site.pages:"),
            EmitLiteral(b"<li>"),
            RunCode("STR(p.title)"),
            EmitLiteral(b"</li>"),
            RunCode("end"),
            EmitLiteral(b"</ul>"),
        ]
    )
    lines = writer.finish().split("\n")
    assert lines[1] == "    for p in site.pages:"
    assert lines[2].startswith("        emit(out, ")
    assert lines[3] == "        STR(p.title)"
    assert lines[4].startswith("        emit(out, ")
    assert lines[5].startswith("    emit(out, ")


def test_empty_and_unclosed_blocks_get_pass():
    assert render_body([RunCode("if x:"), RunCode("end")]) == "    if x:\n        pass"
    assert render_body([RunCode("for x in y:")]) == "    for x in y:\n        pass"
    assert render_body([]) == "    pass"
    assert CodeWriter().finish(None) == ""


def test_continuation_clauses_reopen_blocks():
    lines = render_body(
        [
            RunCode("if a:"),
            EmitLiteral(b"A"),
            RunCode("elif b:"),
            RunCode("else:"),
            EmitLiteral(b"C"),
            RunCode("end"),
        ]
    ).split("\n")
    assert lines[0] == "    if a:"
    assert lines[1].startswith("        emit(")
    assert lines[2] == "    elif b:"
    assert lines[3] == "        pass"
    assert lines[4] == "    else:"
    assert lines[5].startswith("        emit(")


def test_multi_line_code_keeps_relative_indentation():
    lines = render_body(
        [RunCode("if x:\n        y = 1\n        z = 2"), EmitLiteral(b"a")]
    ).split("\n")
    assert lines == [
        "    if x:",
        "        y = 1",
        "        z = 2",
        '    emit(out, b"\\x61", 1)',
    ]


def test_colons_in_strings_and_comments_do_not_open_blocks():
    body = render_body(
        [
            RunCode('RAW("color:#fff")'),
            EmitLiteral(b"a"),
            RunCode("page.title = 'x'  # choices:"),
            EmitLiteral(b"b"),
            RunCode("if x:  # note"),
            EmitLiteral(b"c"),
        ]
    )
    assert body.split("\n") == [
        '    RAW("color:#fff")',
        '    emit(out, b"\\x61", 1)',
        "    page.title = 'x'  # choices:",
        '    emit(out, b"\\x62", 1)',
        "    if x:  # note",
        '        emit(out, b"\\x63", 1)',
    ]
    compile(f"def routine(out, x):\n{body}\n", "routine.py", "exec")


def test_multi_line_code_aligns_continuation_clauses():
    body = render_body(
        [
            RunCode("if page.has('x'):\n       STR('a')\n   else:\n       STR('b')"),
            EmitLiteral(b"c"),
        ]
    )
    assert body.split("\n") == [
        "    if page.has('x'):",
        "        STR('a')",
        "    else:",
        "        STR('b')",
        '    emit(out, b"\\x63", 1)',
    ]
    compile(f"def routine(out, page):\n{body}\n", "routine.py", "exec")


def test_multi_line_body_without_indentation_is_nested():
    lines = render_body([RunCode("for p in ps:\nSTR(p)"), EmitLiteral(b"a")]).split("\n")
    assert lines == ["    for p in ps:", "        STR(p)", '    emit(out, b"\\x61", 1)']


def test_nested_header_does_not_open_block():
    lines = render_body([RunCode("for p in ps:\n    if p:"), EmitLiteral(b"a")]).split("\n")
    assert lines[-1] == '    emit(out, b"\\x61", 1)'


def test_stray_end_is_ignored():
    assert render_body([RunCode("end"), RunCode("x = 1")]) == "    x = 1"


def create_graph(root, write):
    write(
        root,
        {
            "index.md": "---\npage.title = 'Custom'\nsite.posts.append(page)\n---\n# Hi\n",
            "index.mite": LAYOUT,
            "layout/default.mite": "<? for p in site.posts: ?><? STR(p.title) ?><? end ?>",
            "include/nav.mite": "<nav></nav>",
            "pages/hello.md": "Hello",
        },
    )
    graph = SiteLoader(root).load(title="My 'Site'")
    renderer = SiteRenderer(root)
    for template in graph.templates:
        renderer.render_template(template)
    for page in graph.pages:
        renderer.render_page(page)
    return graph


def test_generated_program_structure(tmp_path, write):
    source = ProgramGenerator().generate(create_graph(tmp_path, write))
    compile(source, "mite_site.py", "exec")

    assert source.startswith(f"# Generated by mite {__version__}.")
    assert "from mite import runtime" in source
    assert "DEFAULT_LAYOUT = 'default'" in source
    assert "title=\"My 'Site'\"," in source
    assert "def template_layout_index(out, site, page, content):" in source
    assert "def template_include_nav(out, site, page, content):" in source
    assert "site.templates.register('nav', template_include_nav, is_include=True)" in source
    assert "def page_home(out, site, page):" in source
    assert "def page_pages_hello(out, site, page):" in source
    assert "'pages_hello': page_pages_hello," in source
    assert source.index("def construct_pages") < source.index("def template_layout_index")
    assert source.index("def construct_templates") < source.index("def page_home")


def test_generated_construction_runs_front_matter(tmp_path, write):
    source = ProgramGenerator(default_layout="plain").generate(create_graph(tmp_path, write))
    namespace = {"__name__": "mite_site"}
    exec(compile(source, "mite_site.py", "exec"), namespace)

    site = namespace["construct_global"]()
    namespace["construct_pages"](site)
    namespace["construct_templates"](site)
    assert namespace["DEFAULT_LAYOUT"] == "plain"
    assert site.title == "My 'Site'"
    assert [p.name for p in site.pages] == ["home", "pages_hello"]
    assert site.pages[0].title == "Custom"
    assert site.pages[0].layout == "index"
    assert site.pages[1].output_path == "pages/hello.html"
    assert site.posts == [site.pages[0]]
    assert site.templates.find_layout("default") is not None
    assert site.templates.find_layout("nav") is None
