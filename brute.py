#!/usr/bin/env python3
"""
BRUTE Grading Tool - course overview and evaluation editing from the terminal

Commands:
  login       store the BRUTE session cookie copied from the browser
  table       show the submission grid of a course
  show        show the evaluation of one submission
  grade       change score, penalty, evaluation text or note of a submission
  download    download and unpack the archive a student uploaded

Usage:
  python brute.py login '_shibsession_64656661756c74=...'
  python brute.py table 1030
  python brute.py table 1030 --parallel p101 --color
  python brute.py show https://cw.felk.cvut.cz/brute/teacher/upload/55/1234
  python brute.py grade <url> --score 8 --penalty -1 --evaluation review.md
  python brute.py download <url> --dest output/1234
"""

import argparse
import getpass
import sys

import requests

from brute_auth import (
    CONFIG_FILE,
    load_credential,
    parse_credential,
    save_credential,
    setup_session,
    validate_session,
)
from brute_errors import AuthError, Error
from course_table import CourseTable
from evaluation import download_archive, fetch_evaluation, submit_evaluation

OUTPUT_DIR = "output"


# ============================================================================
# PRESENTATION
# ============================================================================

THEMES = {
    "plain": {
        "ok": "", "bad": "", "dim": "", "reset": "",
    },
    "color": {
        "ok": "\033[32m", "bad": "\033[31m", "dim": "\033[2m", "reset": "\033[0m",
    },
}


def paint(text, style, theme):
    return f"{theme[style]}{text}{theme['reset']}"


def format_points(value):
    if value is None:
        return "-"
    return f"{value:g}"


def format_submission_info(info, theme=THEMES["plain"]):
    """One grid cell as 'manual/ae/penalty', or a dot when not submitted"""
    if not info.submitted:
        return paint("·", "dim", theme)
    text = "/".join(format_points(v) for v in (info.manual_score, info.ae_score, info.penalty))
    style = "ok" if info.manual_score is not None else "bad"
    return paint(text, style, theme)


def origin(raw):
    return "raw HTML" if raw else "source"


def format_record(record, theme=THEMES["plain"]):
    """Multi-line summary of an EvaluationRecord"""
    state = paint(record.state, "ok" if record.accepted else "bad", theme)
    lines = [
        f"Submission:   {record.url}",
        f"Student ID:   {record.student_id}",
        f"Course/Assig: {record.course_id}/{record.assignment_id}",
        f"AE score:     {format_points(record.ae_score)}",
        f"Manual score: {'-' if record.manual_score is None else record.manual_score}",
        f"Penalty:      {record.penalty}",
        f"Score:        {format_points(record.score)}",
        f"State:        {state}",
        f"AE output:    {record.ae_output_url}",
        "",
        f"--- Evaluation ({origin(record.evaluation_raw)}) ---",
        record.evaluation,
        f"--- Note ({origin(record.note_raw)}) ---",
        record.note,
    ]
    return "\n".join(lines)


def format_parallel(table, theme=THEMES["plain"], width=12):
    """The grid of one parallel as fixed-width text"""
    lines = [f"[{table.tab_id}] {table.name}"]
    header = f"{'Student':<16}" + "".join(f"{t[:width - 1]:<{width}}" for t in table.assignments)
    lines.append(header)
    lines.append("=" * len(header))
    for student, cells in table.rows():
        row = f"{student.username[:15]:<16}"
        for info in cells:
            text = format_submission_info(info, THEMES["plain"])
            cell = format_submission_info(info, theme)
            row += cell + " " * max(width - len(text), 1)
        lines.append(row)
    return "\n".join(lines)


# ============================================================================
# AUTHENTICATION
# ============================================================================

def prompt_for_cookie(first_time=False):
    """Interactively ask for a cookie line copied from the browser"""
    if not first_time:
        print("\n[Auth] Cookie appears to be invalid or expired.")
    print("[Auth] Paste the BRUTE cookie as <name>=<value>:\n")
    try:
        line = getpass.getpass("Cookie: ").strip()
    except (KeyboardInterrupt, EOFError):
        print("\n[Auth] Login cancelled")
        return None
    return line or None


def open_session(args):
    """Session for a command; a cookie entered after expiry wins over the stored one"""
    if args.credential is not None:
        print("[Auth] Using fresh cookie")
        return setup_session(args.credential)
    credential = load_credential(args.config)
    print("[Auth] Using saved cookie")
    return setup_session(credential)


def refresh_cookie(config_path):
    """Ask once for a new cookie and store it; returns None if none given"""
    line = prompt_for_cookie()
    if not line:
        return None
    try:
        credential = parse_credential(line)
    except AuthError as e:
        print(f"[Auth] ✗ {e}", file=sys.stderr)
        return None
    save_credential(credential, config_path)
    print(f"[Auth] ✓ Saved cookie to {config_path}")
    return credential


# ============================================================================
# COMMANDS
# ============================================================================

def run_login(args):
    line = args.cookie or prompt_for_cookie(first_time=True)
    if not line:
        print("[Auth] ✗ No cookie provided.")
        return False

    credential = parse_credential(line)
    print("[Auth] Validating session...")
    if not validate_session(setup_session(credential)):
        print("[Auth] ✗ Cookie is invalid or expired")
        return False
    print("[Auth] ✓ Session is valid")

    if not args.dry_run:
        save_credential(credential, args.config)
        print(f"[Config] Saved cookie to {args.config}")
    return True


def run_table(args):
    session = open_session(args)
    print(f"[Fetch] Getting course {args.course_id}...")
    table = CourseTable.fetch(session, args.course_id)
    theme = THEMES["color" if args.color else "plain"]

    parallels = [table.get_parallel(args.parallel)] if args.parallel else table.parallels
    if not parallels:
        print("✗ No parallels found")
        return False

    print(f"[Fetch] ✓ Found {len(table.parallels)} parallel(s)\n")
    for parallel in parallels:
        print(format_parallel(parallel, theme))
        print()
    return True


def run_show(args):
    session = open_session(args)
    print(f"[Fetch] Getting {args.url}")
    record = fetch_evaluation(session, args.url, note_roundtrip=not args.legacy_note)
    print()
    print(format_record(record, THEMES["color" if args.color else "plain"]))
    return True


def read_text(path):
    if path == "-":
        return sys.stdin.read()
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def run_grade(args):
    session = open_session(args)
    print(f"[Fetch] Getting {args.url}")
    record = fetch_evaluation(session, args.url, note_roundtrip=not args.legacy_note)

    if args.clear_score:
        record.set_score(None, args.penalty)
    elif args.score is not None or args.penalty is not None:
        manual = args.score if args.score is not None else record.manual_score
        record.set_score(manual, args.penalty)
    if args.evaluation is not None:
        record.set_evaluation(read_text(args.evaluation))
    if args.note is not None:
        record.set_note(args.note)

    print(f"[Grade] Score {format_points(record.score)} -> {record.state}")
    if args.dry_run:
        print("[Grade] Dry run, nothing submitted")
        return True

    target = submit_evaluation(session, record)
    print(f"[Grade] ✓ Saved, server redirected to {target}")
    return True


def run_download(args):
    session = open_session(args)
    record = fetch_evaluation(session, args.url)
    dest = args.dest or f"{OUTPUT_DIR}/upload_{record.upload_id}"
    print(f"[Download] {record.archive_url}")
    download_archive(session, record, dest)
    print(f"[Download] ✓ Extracted to {dest}")
    return True


def run(args):
    """Run a command, asking for a fresh cookie once if the session expired"""
    try:
        try:
            return args.func(args)
        except AuthError as e:
            if args.func is run_login:
                raise
            print(f"[Auth] ✗ {e}", file=sys.stderr)
            credential = refresh_cookie(args.config)
            if credential is None:
                return False
            args.credential = credential
            return args.func(args)
    except Error as e:
        print(f"✗ {e}", file=sys.stderr)
        return False
    except requests.RequestException as e:
        print(f"✗ Network error: {e}", file=sys.stderr)
        return False


# ============================================================================
# ENTRY POINT
# ============================================================================

def build_parser():
    parser = argparse.ArgumentParser(
        description="BRUTE Grading Tool - course overview and evaluation editing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Authentication (in order of priority):
  1. BRUTE_COOKIE environment variable
  2. cookie line in {CONFIG_FILE} (written by the login command)

Cookie format:
  _shibsession_<hash>=<value>
        """,
    )
    parser.add_argument("--config", type=str, default=CONFIG_FILE,
                        help=f"Cookie file (default: {CONFIG_FILE})")
    parser.set_defaults(credential=None)
    sub = parser.add_subparsers(title="commands")

    cmd = sub.add_parser("login", help="Store the session cookie")
    cmd.set_defaults(func=run_login)
    cmd.add_argument("cookie", nargs="?", help="Cookie as <name>=<value> (prompted if omitted)")
    cmd.add_argument("--dry-run", "-n", action="store_true", help="Validate only, do not save")

    cmd = sub.add_parser("table", help="Show the submission grid of a course")
    cmd.set_defaults(func=run_table)
    cmd.add_argument("course_id", help="Course ID")
    cmd.add_argument("--parallel", "-p", help="Only this parallel (tab id)")
    cmd.add_argument("--color", action="store_true", help="Colored output")

    cmd = sub.add_parser("show", help="Show one evaluation")
    cmd.set_defaults(func=run_show)
    cmd.add_argument("url", help="Submission URL")
    cmd.add_argument("--legacy-note", action="store_true", help="Server keeps notes as plain text")
    cmd.add_argument("--color", action="store_true", help="Colored output")

    cmd = sub.add_parser("grade", help="Edit and submit one evaluation")
    cmd.set_defaults(func=run_grade)
    cmd.add_argument("url", help="Submission URL")
    cmd.add_argument("--score", "-s", type=float, help="Manual score")
    cmd.add_argument("--penalty", "-p", type=float, help="Penalty (negative number)")
    cmd.add_argument("--clear-score", action="store_true", help="Remove the manual score")
    cmd.add_argument("--evaluation", "-e", metavar="FILE", help="Markdown evaluation ('-' for stdin)")
    cmd.add_argument("--note", help="Note for other teachers")
    cmd.add_argument("--legacy-note", action="store_true", help="Server keeps notes as plain text")
    cmd.add_argument("--dry-run", "-n", action="store_true", help="Do not submit")

    cmd = sub.add_parser("download", help="Download the submitted archive")
    cmd.set_defaults(func=run_download)
    cmd.add_argument("url", help="Submission URL")
    cmd.add_argument("--dest", "-d", help=f"Target directory (default: {OUTPUT_DIR}/upload_<id>)")
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 1
    try:
        return 0 if run(args) else 1
    except KeyboardInterrupt:
        print("\n\nGoodbye!")
        return 130


if __name__ == "__main__":
    sys.exit(main())
