"""
BRUTE course overview scraper

The teacher's course page is one big grid: a tab per parallel, a header row of
assignment links, then one row per student with a cell per assignment. None of
it carries ids that tie a cell to its student or assignment, so the grid is
recovered from the order of the <a> elements alone:

  1. scan_anchors() lists every anchor with the attributes that matter.
  2. The discover_* functions walk that list, one layout rule each:
       parallels    a contiguous run of data-toggle="tab" anchors
       assignments  anchors with data-parallel=<tab id>, carrying data-title
       students     rows following the assignment header; each row is the
                    assignment cells followed by the student profile link,
                    up to the next tab's quick-evaluation button

A CourseTable is a snapshot of a single GET; everything derived from it is
computed once and kept.
"""

import re
from dataclasses import dataclass
from functools import cached_property
from typing import List, Optional

from bs4 import BeautifulSoup

from brute_auth import BASE, absolute_url, fetch_page
from brute_errors import FormatError, NotFoundError

COURSE_URL = BASE + "/brute/teacher/course/{course_id}"

TAB_TOGGLE = "tab"
QUICK_EVALUATION_TARGET = "#quick-evaluation"
STUDENT_PATH_RE = re.compile(r"/brute/teacher/student/([^/?#]+)")
SUBMISSION_PATH_RE = re.compile(r"/brute/teacher/upload/[^/?#]+/[^/?#]+")

NUMBER = r"\s*([-+]?\d+(?:[.,]\d+)?)\s*"
PENALTY_RE = re.compile(r'<span class="penalty">' + NUMBER + r"</span>")
AE_SCORE_RE = re.compile(r'<span class="ae-score">' + NUMBER + r"</span>")
MANUAL_SCORE_RE = re.compile(r'<span class="manual-score">' + NUMBER + r"</span>")
NOT_SUBMITTED = '<span class="not-submitted">'


@dataclass(frozen=True)
class Anchor:
    index: int
    href: Optional[str]
    text: str
    markup: str
    toggle: Optional[str] = None
    parallel: Optional[str] = None
    title: Optional[str] = None
    data_id: Optional[str] = None
    target: Optional[str] = None


@dataclass(frozen=True)
class Parallel:
    tab_id: str
    name: str


@dataclass(frozen=True)
class Student:
    username: str
    student_id: str
    url: str
    first_cell: int


@dataclass(frozen=True)
class SubmissionInfo:
    submitted: bool
    ae_score: Optional[float]
    manual_score: Optional[float]
    penalty: Optional[float]
    url: Optional[str]


# ============================================================================
# PASS 1 - ANCHOR LIST
# ============================================================================

def scan_anchors(html) -> List[Anchor]:
    """Every <a> of the page, in document order"""
    soup = BeautifulSoup(html, "html.parser")
    anchors = []
    for index, a in enumerate(soup.find_all("a")):
        anchors.append(Anchor(
            index=index,
            href=a.get("href"),
            text=a.get_text(" ", strip=True),
            markup=str(a),
            toggle=a.get("data-toggle"),
            parallel=a.get("data-parallel"),
            title=a.get("data-title"),
            data_id=a.get("data-id"),
            target=a.get("data-target"),
        ))
    return anchors


# ============================================================================
# PASS 2 - LAYOUT RULES
# ============================================================================

def tab_id_of(anchor):
    href = anchor.href or ""
    if "#" in href:
        fragment = href.split("#", 1)[1]
        if fragment:
            return fragment
    if anchor.data_id:
        return anchor.data_id
    raise FormatError(f"Parallel tab '{anchor.text}' has no tab id")


def discover_parallels(anchors):
    parallels = []
    for anchor in anchors:
        if anchor.toggle == TAB_TOGGLE:
            parallels.append(Parallel(tab_id=tab_id_of(anchor), name=anchor.text))
        elif parallels:
            break
    return parallels


def discover_assignments(anchors, tab_id):
    """Return (assignment titles, index of the last header anchor)"""
    titles = []
    last_index = None
    for anchor in anchors:
        if anchor.parallel == tab_id:
            titles.append(anchor.title if anchor.title is not None else anchor.text)
            last_index = anchor.index
        elif titles:
            break
    return titles, last_index


def discover_students(anchors, start, assignment_count):
    """Students from anchors[start:] up to the next quick-evaluation button"""
    students = []
    for anchor in anchors[start:]:
        if anchor.target == QUICK_EVALUATION_TARGET:
            break
        m = STUDENT_PATH_RE.search(anchor.href or "")
        if not m:
            continue
        first_cell = anchor.index - assignment_count
        if first_cell < start:
            raise FormatError(
                f"Student '{anchor.text}' has fewer than {assignment_count} cells before it")
        students.append(Student(
            username=anchor.text,
            student_id=m.group(1),
            url=absolute_url(anchor.href),
            first_cell=first_cell,
        ))
    return students


def parse_number(match):
    if not match:
        return None
    return float(match.group(1).replace(",", "."))


def decode_cell(anchor):
    """SubmissionInfo from the markup of one grid cell"""
    penalty = parse_number(PENALTY_RE.search(anchor.markup))
    ae_score = parse_number(AE_SCORE_RE.search(anchor.markup))
    manual_score = parse_number(MANUAL_SCORE_RE.search(anchor.markup))

    no_scores = penalty is None and ae_score is None and manual_score is None
    submitted = not (no_scores and NOT_SUBMITTED in anchor.markup)

    url = None
    if anchor.href and SUBMISSION_PATH_RE.search(anchor.href):
        url = absolute_url(anchor.href)
    return SubmissionInfo(submitted, ae_score, manual_score, penalty, url)


# ============================================================================
# TABLES
# ============================================================================

class ParallelTable:
    """Assignments and students of one parallel, scoped to a fetched page"""

    def __init__(self, parallel, anchors):
        self.parallel = parallel
        self._anchors = anchors

    def __repr__(self):
        return f"<ParallelTable {self.tab_id} {self.name!r}>"

    @property
    def tab_id(self):
        return self.parallel.tab_id

    @property
    def name(self):
        return self.parallel.name

    @cached_property
    def _header(self):
        return discover_assignments(self._anchors, self.tab_id)

    @property
    def assignments(self):
        return self._header[0]

    @cached_property
    def students(self):
        titles, last_index = self._header
        if last_index is None:
            return []
        return discover_students(self._anchors, last_index + 1, len(titles))

    def get_student(self, username):
        for student in self.students:
            if student.username == username:
                return student
        raise NotFoundError(f"No student '{username}' in parallel {self.name}")

    def get_assignment_index(self, assignment):
        try:
            return self.assignments.index(assignment)
        except ValueError:
            raise NotFoundError(f"No assignment '{assignment}' in parallel {self.name}")

    def get_submission_info(self, student, assignment):
        """Cell of a student (or username) for an assignment title"""
        if isinstance(student, str):
            student = self.get_student(student)
        index = student.first_cell + self.get_assignment_index(assignment)
        return decode_cell(self._anchors[index])

    def rows(self):
        """Yield (student, [SubmissionInfo per assignment])"""
        for student in self.students:
            yield student, [self.get_submission_info(student, title)
                            for title in self.assignments]


class CourseTable:
    """The course overview page of one course"""

    def __init__(self, html, course_id=None):
        self.course_id = course_id
        self._anchors = scan_anchors(html)

    @classmethod
    def fetch(cls, session, course_id):
        html = fetch_page(session, COURSE_URL.format(course_id=course_id))
        return cls(html, course_id)

    @cached_property
    def parallels(self):
        return [ParallelTable(parallel, self._anchors)
                for parallel in discover_parallels(self._anchors)]

    def get_parallel(self, tab_id):
        for table in self.parallels:
            if table.tab_id == tab_id:
                return table
        raise NotFoundError(f"No parallel '{tab_id}' in course {self.course_id}")

    def find_student(self, username):
        """Return (ParallelTable, Student) for a username anywhere in the course"""
        for table in self.parallels:
            for student in table.students:
                if student.username == username:
                    return table, student
        raise NotFoundError(f"No student '{username}' in course {self.course_id}")
