from artifact_archive.text import (
    apply_text_optimizations,
    is_source_code,
    is_text_file,
    normalize_text,
    strip_comments,
)


def test_is_text_file_uses_extension_allow_list():
    assert is_text_file("src/main.js")
    assert is_text_file("contracts/Token.SOL")
    assert is_text_file("bbOut.json")
    assert not is_text_file("assets/logo.png")
    assert not is_text_file("Makefile")


def test_is_source_code():
    assert is_source_code("const answer = 42")
    assert is_source_code("function main(a) {}")
    assert is_source_code("import { x } from './x'")
    assert not is_source_code("just some notes\nwith two lines")


def test_normalize_text():
    assert normalize_text("a  \r\nb\t\n\n\n\nc") == "a\nb\n\nc"


def test_strip_comments_keeps_urls():
    code = "x = 1 // note\n/* block\n comment */\ny = 'http://example.com'\n"
    stripped = strip_comments(code)
    assert "note" not in stripped
    assert "block" not in stripped
    assert "http://example.com" in stripped
    assert stripped.startswith("x = 1")


def test_apply_text_optimizations_on_code():
    code = "// header\nconst a = 1;   \r\n\n\n\nconst b = 2;\n"
    assert apply_text_optimizations(code) == "const a = 1;\nconst b = 2;\n"


def test_apply_text_optimizations_leaves_prose_comments():
    prose = "see // this is not code   \n"
    assert apply_text_optimizations(prose) == "see // this is not code\n"


def test_comment_stripping_can_be_disabled():
    code = "const a = 1; // keep\n"
    assert "keep" in apply_text_optimizations(code, strip_source_comments=False)
