"""
Table name sanitization.

Caller-supplied table names are filtered down to alphanumerics and
underscore before they become physical identifiers. This is a filter,
not an escaping scheme: "users;drop" and "usersdrop" map to the same table.
"""


def sanitize(name: str) -> str:
    """Keep only alphanumeric characters and underscores."""
    return "".join(c for c in name if c.isalnum() or c == "_")
