"""Request context middleware."""
import re
from flask import g, request

USERNAME_HEADER = 'X-Username'
DEFAULT_USERNAME = 'system'
_USERNAME_RE = re.compile(r'^[\w.@-]{1,100}$')


def load_request_context():
    """
    Load the acting user into g (Flask's per-request global).

    Authentication happens upstream; the gateway forwards the user name in
    the X-Username header. Missing or malformed values fall back to 'system'.
    """
    username = (request.headers.get(USERNAME_HEADER) or '').strip()
    g.username = username if _USERNAME_RE.match(username) else DEFAULT_USERNAME
