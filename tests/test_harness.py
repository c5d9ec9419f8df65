from codegrade.services import harness
from codegrade.services.harness import (
    MARKER_PREFIX,
    PYTHON_HARNESS,
    inject,
    json_string_literal,
    new_marker,
    rust_string_literal,
)


def test_markers_are_unique_per_job():
    first, second = new_marker(), new_marker()
    assert first != second
    assert first.startswith(MARKER_PREFIX)


def test_json_literal_escapes_quotes_and_newlines():
    assert json_string_literal('say "hi"\n') == '"say \\"hi\\"\\n"'
    assert json_string_literal("café") == '"café"'


def test_rust_literal_uses_braced_unicode_escapes():
    assert rust_string_literal('a\x01"b\\') == '"a\\u{1}\\"b\\\\"'
    assert rust_string_literal("line\tend\n") == '"line\\tend\\n"'


def test_inject_keeps_user_code_verbatim():
    code = "def solution(s):\n    return '$HOME' + s\n"
    source = inject(PYTHON_HARNESS, code, ["a", "b"], ["1", "2"], "__M__")
    assert source.startswith(code)
    assert 'inputs = ["a", "b"]' in source
    assert 'expected = ["1", "2"]' in source
    assert 'print("__M__")' in source


def test_every_template_prints_the_marker():
    templates = [
        harness.JAVASCRIPT_HARNESS,
        harness.PYTHON_HARNESS,
        harness.JAVA_HARNESS,
        harness.CPP_HARNESS,
        harness.CSHARP_HARNESS,
        harness.GO_HARNESS,
        harness.RUST_HARNESS,
    ]
    extras = {"class_names": "\"Solution\"", "main_prefix": "", "main_suffix": "", "main_stub": ""}
    for template in templates:
        source = inject(template, "/* user */", ["x"], ["y"], "__MARK__", **extras)
        assert "__MARK__" in source
        assert "/* user */" in source
        assert "$" not in source.replace("/* user */", "")
