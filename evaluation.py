"""
BRUTE submission evaluation - scrape, edit and resubmit one student's upload

The review page of a submission (/brute/teacher/upload/<uploadId>/<submissionId>)
carries a form with hidden identity fields, the score inputs and two textareas.
fetch_evaluation() turns that page into an EvaluationRecord, the record's
setters apply the grading rules, and submit_evaluation() posts the whole form
back the way the browser would.
"""

import os
import re
import tarfile
import tempfile
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup

import roundtrip
from brute_auth import BASE, absolute_url, fetch_page, send
from brute_errors import (
    ArchiveError,
    FormatError,
    UnexpectedResponseError,
    ValidationError,
)

SUBMISSION_PATH_RE = re.compile(
    r"^(?P<prefix>.*/teacher/upload)/(?P<upload_id>[^/?#]+)/(?P<submission_id>[^/?#]+)/?$"
)
STUDENT_PATH_RE = re.compile(r"/brute/teacher/student/([^/?#]+)")
AE_OUTPUT_PREFIX = "/brute/data/"
ARCHIVE_SUFFIX = "download.tgz"
UPLOAD_ENDPOINT = f"{BASE}/brute/teacher/upload"
COURSE_PATH_PREFIX = "/brute/teacher/course/"

# Hidden inputs the server needs to accept the POST as an edit of this upload
REQUIRED_FIELDS = ("course_id", "assignment_id", "submission_id", "team_id", "ae_score")

EVALUATION_TAG = "EVALUATION"
NOTE_TAG = "NOTE"

STATUS_ACCEPTED = "0"
STATUS_REJECTED = "1"

SCORE_PLACES = Decimal("0.0001")


def to_number(value, field):
    """Parse a score-like form value; empty means zero"""
    if value is None or value == "":
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip().replace(",", "."))
    except ValueError:
        raise ValidationError(f"{field} must be a number, got {value!r}")


def round_score(value):
    """Round to 4 places, half up, on the shortest decimal form of the float"""
    try:
        exact = Decimal(repr(float(value)))
        return float(exact.quantize(SCORE_PLACES, rounding=ROUND_HALF_UP))
    except InvalidOperation:
        raise ValidationError(f"Cannot round score {value!r}")


def format_number(value):
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class EvaluationRecord:
    """
    Editable state of one submission.

    score and status are derived: set_score() recomputes them from the
    manual score, the penalty and the automatic evaluation score.
    """

    REJECTED_NO_MANUAL_SCORE = "rejected-no-manual-score"
    REJECTED_NEGATIVE_SCORE = "rejected-negative-score"
    ACCEPTED = "accepted"

    def __init__(self, url, upload_id, course_id, assignment_id, submission_id,
                 team_id, student_id, ae_score, evaluation="", note="",
                 evaluation_raw=True, note_raw=True, note_roundtrip=True,
                 ae_output_url=None, archive_url=None):
        self.url = url
        self.upload_id = upload_id
        self.course_id = course_id
        self.assignment_id = assignment_id
        self.submission_id = submission_id
        self.team_id = team_id
        self.student_id = student_id
        self.ae_score = to_number(ae_score, "ae_score")
        # hidden input value as scraped, posted back unchanged
        self.ae_score_field = ae_score if isinstance(ae_score, str) else format_number(self.ae_score)
        self.ae_output_url = ae_output_url
        self.archive_url = archive_url

        self.manual_score = None
        self.penalty = 0
        self.score = None
        self.state = self.REJECTED_NO_MANUAL_SCORE
        self.status = STATUS_REJECTED

        self.evaluation = evaluation
        self.evaluation_raw = evaluation_raw
        self.note = note
        self.note_raw = note_raw
        self.note_roundtrip = note_roundtrip

    def __repr__(self):
        return (f"<EvaluationRecord upload={self.upload_id} student={self.student_id} "
                f"score={self.score} {self.state}>")

    @property
    def accepted(self):
        return self.state == self.ACCEPTED

    def set_score(self, manual_score=None, penalty=None):
        """
        Update the manual score and/or the penalty and recompute the score.

        Leaving out manual_score clears it, which rejects the submission.
        Returns True when the submission ends up accepted.
        """
        # Validate everything before touching the record
        new_penalty = self.penalty if penalty is None else penalty
        penalty_value = to_number(new_penalty, "penalty")

        if manual_score is None:
            score = None
            state = self.REJECTED_NO_MANUAL_SCORE
        else:
            score = round_score(to_number(manual_score, "manual_score")
                                + penalty_value
                                + self.ae_score)
            state = self.REJECTED_NEGATIVE_SCORE if score < 0 else self.ACCEPTED

        self.penalty = new_penalty
        self.manual_score = manual_score
        self.score = score
        self.state = state
        self.status = STATUS_ACCEPTED if self.accepted else STATUS_REJECTED
        return self.accepted

    def set_evaluation(self, text):
        self.evaluation = text
        self.evaluation_raw = False

    def set_note(self, text):
        if "</textarea" in text.lower():
            raise ValidationError("Note must not contain </textarea>")
        self.note = text
        self.note_raw = False

    def form_data(self, render=roundtrip.render_markdown):
        """POST parameters reproducing the review form"""
        evaluation = self.evaluation
        if not self.evaluation_raw:
            evaluation = roundtrip.encode(evaluation, EVALUATION_TAG, render=render)

        note = self.note
        if not self.note_raw and self.note_roundtrip:
            note = roundtrip.encode(note, NOTE_TAG, render=render)

        return {
            "course_id": self.course_id,
            "assignment_id": self.assignment_id,
            "submission_id": self.submission_id,
            "team_id": self.team_id,
            "student_id": self.student_id,
            "ae_score": self.ae_score_field,
            "manual_score": format_number(self.manual_score),
            "penalty": format_number(self.penalty),
            "score": format_number(self.score),
            "status": self.status,
            "evaluation": evaluation,
            "note": note,
        }


# ============================================================================
# SCRAPER
# ============================================================================

def parse_submission_url(url):
    """Return (upload_id, submission_id) of a submission review URL"""
    path = urlparse(absolute_url(url)).path
    m = SUBMISSION_PATH_RE.match(path)
    if not m:
        raise FormatError(f"Not a submission URL: {url}")
    return m.group("upload_id"), m.group("submission_id")


def archive_url_for(url):
    """Download URL of the uploaded archive for a submission URL"""
    parse_submission_url(url)
    absolute = absolute_url(url).split("?", 1)[0].split("#", 1)[0].rstrip("/")
    return absolute.rsplit("/", 1)[0] + "/" + ARCHIVE_SUFFIX


def find_links(soup):
    """Return (ae_output_url, student_id) from the page's anchors"""
    ae_output_url = None
    student_id = None
    for a in soup.find_all("a", href=True):
        href = a["href"]
        path = urlparse(href).path
        if ae_output_url is None and path.startswith(AE_OUTPUT_PREFIX):
            ae_output_url = absolute_url(href)
        if student_id is None:
            m = STUDENT_PATH_RE.search(path)
            if m:
                student_id = m.group(1)

    if ae_output_url is None:
        raise FormatError(f"No grading output link ({AE_OUTPUT_PREFIX}...) on the page")
    if student_id is None:
        raise FormatError("No student profile link on the page")
    return ae_output_url, student_id


def input_value(soup, name):
    field = soup.find("input", attrs={"name": name})
    if field is None:
        return None
    return field.get("value")


def parse_evaluation_page(html, url, note_roundtrip=True):
    """Build an EvaluationRecord from the HTML of a submission review page"""
    upload_id, _ = parse_submission_url(url)
    soup = BeautifulSoup(html, "html.parser")

    evaluation_raw, evaluation = roundtrip.decode(html, EVALUATION_TAG)
    if note_roundtrip:
        note_raw, note = roundtrip.decode(html, NOTE_TAG)
    else:
        note_raw = True
        note = roundtrip.textarea_text(soup, NOTE_TAG.lower())
        if note is None:
            raise FormatError("No 'note' textarea found")

    ae_output_url, student_id = find_links(soup)

    hidden = {}
    for name in REQUIRED_FIELDS:
        value = input_value(soup, name)
        if not value:
            raise FormatError(f"Required form field '{name}' is missing or empty")
        hidden[name] = value

    record = EvaluationRecord(
        url=absolute_url(url),
        upload_id=upload_id,
        course_id=hidden["course_id"],
        assignment_id=hidden["assignment_id"],
        submission_id=hidden["submission_id"],
        team_id=hidden["team_id"],
        student_id=student_id,
        ae_score=hidden["ae_score"],
        evaluation=evaluation,
        note=note,
        evaluation_raw=evaluation_raw,
        note_raw=note_raw,
        note_roundtrip=note_roundtrip,
        ae_output_url=ae_output_url,
        archive_url=archive_url_for(url),
    )

    manual_score = input_value(soup, "manual_score") or None
    penalty = input_value(soup, "penalty") or 0
    record.set_score(manual_score, penalty)
    return record


def fetch_evaluation(session, url, note_roundtrip=True):
    """Fetch a submission review page and parse it into an EvaluationRecord"""
    parse_submission_url(url)
    html = fetch_page(session, url)
    return parse_evaluation_page(html, url, note_roundtrip=note_roundtrip)


# ============================================================================
# SUBMITTER
# ============================================================================

def submit_evaluation(session, record, render=roundtrip.render_markdown):
    """
    Post the record back to BRUTE.

    The server answers an accepted edit with a redirect to the course page;
    that target URL is returned. Any other answer raises
    UnexpectedResponseError.
    """
    resp = send(session, UPLOAD_ENDPOINT, method="POST", data=record.form_data(render=render))
    location = resp.headers.get("Location")
    if resp.is_redirect and location and \
            urlparse(location).path.startswith(COURSE_PATH_PREFIX):
        return absolute_url(location)
    raise UnexpectedResponseError(resp.status_code, location, UPLOAD_ENDPOINT)


# ============================================================================
# ARCHIVE
# ============================================================================

def download_archive(session, record, dest_dir):
    """Download the uploaded .tgz of a submission and extract it into dest_dir"""
    try:
        resp = send(session, record.archive_url, stream=True)
        if resp.is_redirect:
            raise UnexpectedResponseError(resp.status_code, resp.headers.get("Location"),
                                          record.archive_url)
        resp.raise_for_status()

        os.makedirs(dest_dir, exist_ok=True)
        with tempfile.TemporaryFile() as tmp:
            for chunk in resp.iter_content(chunk_size=65536):
                tmp.write(chunk)
            tmp.seek(0)
            with tarfile.open(fileobj=tmp, mode="r:*") as tf:
                if hasattr(tarfile, "data_filter"):
                    tf.extractall(dest_dir, filter="data")
                else:
                    tf.extractall(dest_dir)
    except (requests.RequestException, UnexpectedResponseError, tarfile.TarError, OSError) as e:
        raise ArchiveError(f"Cannot fetch archive {record.archive_url}: {e}") from e
    return dest_dir
