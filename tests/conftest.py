import pytest
import requests

from brute_auth import COOKIE_ENV

REDIRECT_CODES = (301, 302, 303, 307, 308)


class FakeResponse:
    """The parts of requests.Response the tools touch"""

    def __init__(self, status_code=200, text="", headers=None, content=None):
        self.status_code = status_code
        self.text = text
        self.headers = headers or {}
        self.content = content if content is not None else text.encode("utf-8")

    @property
    def is_redirect(self):
        return "Location" in self.headers and self.status_code in REDIRECT_CODES

    @property
    def ok(self):
        return self.status_code < 400

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]


class FakeSession:
    """Replays canned responses and records every request"""

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        try:
            return self.responses[(method, url)]
        except KeyError:
            return FakeResponse(404, "not found")


@pytest.fixture(autouse=True)
def no_cookie_env(monkeypatch):
    monkeypatch.delenv(COOKIE_ENV, raising=False)


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def response():
    return FakeResponse


def evaluation_page(evaluation="Good job", note="", fields=None, links=True,
                    manual_score="", penalty="0"):
    """HTML of a submission review page"""
    values = {
        "course_id": "1030",
        "assignment_id": "77",
        "submission_id": "1234",
        "team_id": "5",
        "ae_score": "5",
    }
    if fields is not None:
        values = fields
    hidden = "\n".join(
        f'<input type="hidden" name="{name}" value="{value}">'
        for name, value in values.items()
    )
    anchors = ""
    if links:
        anchors = ('<a href="/brute/data/ae/55/1234/output.txt">AE output</a>\n'
                   '<a href="/brute/teacher/student/991">jdoe</a>')
    return f"""<html><body>
<h1>Upload 55</h1>
{anchors}
<form method="post" action="/brute/teacher/upload">
{hidden}
<input type="text" name="manual_score" value="{manual_score}">
<input type="text" name="penalty" value="{penalty}">
<textarea name="evaluation">
{evaluation}</textarea>
<textarea name="note">{note}</textarea>
<input type="submit" value="Save">
</form>
</body></html>"""


@pytest.fixture
def make_evaluation_page():
    return evaluation_page


def course_page(parallels, students):
    """
    HTML of a course overview.

    parallels: list of (tab_id, name, [assignment titles])
    students: {tab_id: [(username, student_id, [cell markup per assignment])]}
    """
    tabs = "\n".join(
        f'<li><a data-toggle="tab" href="#{tab_id}">{name}</a></li>'
        for tab_id, name, _ in parallels
    )
    panes = []
    for tab_id, name, titles in parallels:
        header = "".join(
            f'<th><a data-parallel="{tab_id}" data-title="{title}" '
            f'href="/brute/teacher/assignment/{i}">{title[:4]}</a></th>'
            for i, title in enumerate(titles)
        )
        rows = []
        for username, student_id, cells in students.get(tab_id, []):
            tds = "".join(f"<td>{cell}</td>" for cell in cells)
            rows.append(f'<tr>{tds}<td><a href="/brute/teacher/student/{student_id}">'
                        f"{username}</a></td></tr>")
        panes.append(f"""<div class="tab-pane" id="{tab_id}">
<a data-toggle="modal" data-target="#quick-evaluation" data-id="{tab_id}">Quick evaluation</a>
<table><thead><tr>{header}<th>Student</th></tr></thead>
<tbody>{''.join(rows)}</tbody></table>
</div>""")
    return f"""<html><body>
<a href="/brute/">BRUTE</a>
<ul class="nav nav-tabs">{tabs}</ul>
<a href="/brute/teacher/course/1030/export">Export</a>
{''.join(panes)}
<a href="/brute/help">Help</a>
</body></html>"""


def cell(manual=None, ae=None, penalty=None, upload="55/1234"):
    spans = []
    if manual is not None:
        spans.append(f'<span class="manual-score">{manual}</span>')
    if ae is not None:
        spans.append(f'<span class="ae-score">{ae}</span>')
    if penalty is not None:
        spans.append(f'<span class="penalty">{penalty}</span>')
    return f'<a href="/brute/teacher/upload/{upload}">{" ".join(spans)}</a>'


def missing_cell():
    return '<a href="#"><span class="not-submitted">&#8212;</span></a>'


@pytest.fixture
def make_course_page():
    return course_page


@pytest.fixture
def make_cell():
    return cell


@pytest.fixture
def make_missing_cell():
    return missing_cell
