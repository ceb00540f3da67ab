"""
BRUTE session handling - cookie storage and the request gate

The tools never log in by themselves. The user copies the Shibboleth session
cookie out of a browser and stores it as a single line:

    _shibsession_<hash>=<value>

either in the file .brute_cookie or in the BRUTE_COOKIE environment variable.
Every request goes through send(), which refuses to follow redirects and turns
a bounce to the SSO login page into AuthError.
"""

import os
from collections import namedtuple
from urllib.parse import urljoin, urlparse

import requests

from brute_errors import AuthError, UnexpectedResponseError

BASE = "https://cw.felk.cvut.cz"
BRUTE_HOST = "cw.felk.cvut.cz"
SSO_HOST = "idp2.civ.cvut.cz"
COOKIE_PREFIX = "_shibsession_"
CONFIG_FILE = ".brute_cookie"
COOKIE_ENV = "BRUTE_COOKIE"
USER_AGENT = "Mozilla/5.0"
TIMEOUT = 30

Credential = namedtuple("Credential", "name value")


# ============================================================================
# CREDENTIAL STORE
# ============================================================================

def parse_credential(line):
    """Split a stored '<name>=<value>' line into a Credential"""
    line = (line or "").strip()
    if "=" not in line:
        raise AuthError("Stored cookie is not in the form <name>=<value>")

    name, value = line.split("=", 1)
    name = name.strip()
    value = value.strip().strip('"').strip("'")
    if not name.startswith(COOKIE_PREFIX):
        raise AuthError(f"Cookie name must start with {COOKIE_PREFIX}")
    if not value:
        raise AuthError(f"Cookie {name} has an empty value")
    return Credential(name, value)


def load_credential(config_path=CONFIG_FILE):
    """Read the session cookie from the environment or the cookie file"""
    if os.environ.get(COOKIE_ENV):
        return parse_credential(os.environ[COOKIE_ENV])

    if not os.path.exists(config_path):
        raise AuthError(f"No session cookie stored (looked at ${COOKIE_ENV} and {config_path})")

    with open(config_path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            return parse_credential(line)

    raise AuthError(f"No session cookie stored in {config_path}")


def save_credential(credential, config_path=CONFIG_FILE):
    """Write the cookie file, replacing whatever was there"""
    with open(config_path, "w", encoding="utf-8") as f:
        f.write(f"{credential.name}={credential.value}\n")
    return config_path


# ============================================================================
# REQUEST GATE
# ============================================================================

def setup_session(credential):
    """Create a requests session carrying the BRUTE cookie"""
    if credential is None:
        raise AuthError("No session cookie stored")
    s = requests.Session()
    s.cookies.set(credential.name, credential.value, domain=BRUTE_HOST)
    s.headers.update({"User-Agent": USER_AGENT})
    return s


def absolute_url(url):
    return urljoin(BASE + "/", url)


def is_sso_redirect(response):
    if not response.is_redirect:
        return False
    location = response.headers.get("Location", "")
    return urlparse(location).hostname == SSO_HOST


def send(session, url, method="GET", data=None, files=None, stream=False):
    """
    Issue a single request without following redirects.

    A redirect to the SSO identity provider means the cookie is no longer
    accepted and is reported as AuthError. Every other response is returned
    as-is.
    """
    resp = session.request(
        method,
        absolute_url(url),
        data=data,
        files=files,
        stream=stream,
        allow_redirects=False,
        timeout=TIMEOUT,
    )
    if is_sso_redirect(resp):
        raise AuthError("Session expired, copy a fresh cookie from the browser")
    return resp


def fetch_page(session, url):
    """GET a page through the gate and return its HTML"""
    resp = send(session, url)
    if resp.is_redirect:
        raise UnexpectedResponseError(resp.status_code, resp.headers.get("Location"), url)
    resp.raise_for_status()
    return resp.text


def validate_session(session):
    """Check if the session cookie is still accepted"""
    try:
        fetch_page(session, f"{BASE}/brute/")
    except (AuthError, UnexpectedResponseError):
        return False
    return True
