"""
Round-trip encoding for the rich-text fields of an evaluation.

BRUTE stores the evaluation text as HTML and shows it to the student as-is.
To get the Markdown source back on the next edit, the source is kept in an
HTML comment in front of the rendering:

    <!-- EVALUATION-SOURCE-BEGIN-<salt>...source...EVALUATION-SOURCE-END-<salt> -->
    <div class="brute-evaluation">...rendered HTML...</div>

A field without the markers was never written by these tools and its textarea
content is used verbatim.
"""

import markdown
from bs4 import BeautifulSoup

from brute_errors import FormatError

MARKER_SALT = "q7Zx3Kp9vM"
MARKDOWN_EXTENSIONS = ["fenced_code", "tables", "sane_lists"]


def markers(tag):
    """Begin/end marker pair for a tag such as EVALUATION or NOTE"""
    return (
        f"{tag}-SOURCE-BEGIN-{MARKER_SALT}",
        f"{tag}-SOURCE-END-{MARKER_SALT}",
    )


def render_markdown(source):
    return markdown.markdown(source, extensions=MARKDOWN_EXTENSIONS)


def encode(source, tag, render=render_markdown):
    """Wrap the source in a marker comment followed by its rendering"""
    begin, end = markers(tag)
    return (
        f"<!-- {begin}{source}{end} -->\n"
        f'<div class="brute-{tag.lower()}">\n{render(source)}\n</div>'
    )


def textarea_text(soup, name):
    """Literal content of a named textarea, or None if there is none"""
    textarea = soup.find("textarea", attrs={"name": name})
    if textarea is None:
        return None
    text = textarea.get_text()
    # Browsers drop one newline right after <textarea>
    if text.startswith("\r\n"):
        text = text[2:]
    elif text.startswith("\n"):
        text = text[1:]
    return text


def extract_between(text, tag):
    begin, end = markers(tag)
    start = text.find(begin)
    if start < 0:
        return None
    start += len(begin)
    stop = text.find(end, start)
    if stop < 0:
        return None
    return text[start:stop]


def decode(page_html, tag, field=None):
    """
    Recover a field from a page.

    Returns (is_raw, text). is_raw is False when the markers were found and
    text is the original source, True when the textarea content was taken
    unchanged.
    """
    field = field or tag.lower()
    soup = BeautifulSoup(page_html, "html.parser")
    stored = textarea_text(soup, field)

    source = extract_between(page_html if stored is None else stored, tag)
    if source is not None:
        return False, source
    if stored is None:
        raise FormatError(f"Neither {tag} markers nor a '{field}' textarea found")
    return True, stored
