"""
Error types raised by the BRUTE grading tools.

Everything the tools raise on purpose derives from Error, so a front end can
catch one type and print the message. Transport failures from requests are
not wrapped and reach the caller as they are.
"""


class Error(Exception):
    message = ""

    def __init__(self, message=None):
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def __str__(self):
        return self.message


class AuthError(Error):
    """Missing, malformed or expired session cookie"""


class FormatError(Error):
    """A fetched page does not have the expected structure"""


class ValidationError(Error):
    """A caller-supplied value breaks a domain rule"""


class NotFoundError(Error):
    """A named parallel, student or assignment is not on the page"""


class UnexpectedResponseError(Error):
    def __init__(self, status, location=None, url=None):
        self.status = status
        self.location = location
        self.url = url
        if location:
            message = f"Unexpected HTTP {status} redirecting to {location}"
        else:
            message = f"Unexpected HTTP {status}"
        if url:
            message += f" (request: {url})"
        super().__init__(message)


class ArchiveError(Error, IOError):
    """Submission archive could not be downloaded or extracted"""
