"""
TYUST portal gateway.

Logs students into the university SSO on their behalf and serves their
timetable and grades through a small JSON API.
"""

__version__ = "1.0.0"
