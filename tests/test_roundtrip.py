import html

import pytest

from brute_errors import FormatError
from roundtrip import decode, encode, markers


@pytest.mark.parametrize("source", [
    "",
    "Plain sentence.",
    "# Heading\n\n* one\n* two\n",
    "a < b && c > d",
    "```python\nprint('<tag>')\n```",
    "unicode: příliš žluťoučký kůň",
])
@pytest.mark.parametrize("tag", ["EVALUATION", "NOTE"])
def test_decode_inverts_encode(source, tag):
    assert decode(encode(source, tag), tag) == (False, source)


def test_encode_appends_rendering():
    payload = encode("# Title", "EVALUATION")
    begin, end = markers("EVALUATION")
    assert payload.startswith("<!-- " + begin + "# Title" + end + " -->")
    assert "<h1>Title</h1>" in payload


def test_encode_uses_given_renderer():
    payload = encode("x", "NOTE", render=lambda s: "<p>rendered</p>")
    assert "<p>rendered</p>" in payload


def test_markers_differ_per_tag():
    assert markers("EVALUATION") != markers("NOTE")
    begin, end = markers("NOTE")
    assert "NOTE" in begin and "NOTE" in end and begin != end


def test_fallback_to_textarea():
    page = '<form><textarea name="evaluation">Old &amp; plain <b>html</b></textarea></form>'
    page = page.replace("<b>html</b>", "&lt;b&gt;html&lt;/b&gt;")
    assert decode(page, "EVALUATION") == (True, "Old & plain <b>html</b>")


def test_fallback_drops_leading_newline():
    page = '<textarea name="note">\nfirst line\nsecond</textarea>'
    assert decode(page, "NOTE") == (True, "first line\nsecond")


def test_markers_inside_escaped_textarea():
    source = "Use `a < b` & check"
    page = ('<p>preview</p><textarea name="evaluation">'
            + html.escape(encode(source, "EVALUATION")) + "</textarea>")
    assert decode(page, "EVALUATION") == (False, source)


def test_only_begin_marker_is_raw():
    begin, _ = markers("EVALUATION")
    page = f'<textarea name="evaluation">{begin}half</textarea>'
    assert decode(page, "EVALUATION") == (True, begin + "half")


def test_other_tag_markers_ignored():
    page = '<textarea name="note">' + html.escape(encode("n", "EVALUATION")) + "</textarea>"
    raw, text = decode(page, "NOTE")
    assert raw is True


def test_no_markers_no_textarea():
    with pytest.raises(FormatError):
        decode("<html><body>nothing</body></html>", "EVALUATION")


def test_custom_field_name():
    page = '<textarea name="comment">hi</textarea>'
    assert decode(page, "NOTE", field="comment") == (True, "hi")
