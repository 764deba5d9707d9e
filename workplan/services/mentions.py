"""
@mention parsing for comments.

Supported forms:
    @jane.doe@example.com   full e-mail, matched case-insensitively
    @jane.doe               e-mail local part, exact (case-insensitive) match

Matching is against the user list passed in at comment-creation time. The
result is frozen on the comment; a later change to the user list never
re-evaluates old comments.
"""

import re

# "@" not preceded by a word character, then a full address or a bare local part
MENTION_RE = re.compile(r"(?<![\w.])@([A-Za-z0-9._%+-]+(?:@[A-Za-z0-9.-]+\.[A-Za-z]{2,})?)")


def parse_mentions(text: str, users) -> list[str]:
    """Return ids of mentioned users, in order of first mention, without duplicates."""
    if not text:
        return []

    by_email = {}
    by_local = {}
    for user in users or []:
        email = (getattr(user, "email", "") or "").strip().lower()
        if not email:
            continue
        by_email.setdefault(email, user.id)
        by_local.setdefault(email.split("@", 1)[0], user.id)

    found = []
    for match in MENTION_RE.finditer(text):
        token = match.group(1).lower().rstrip(".")
        user_id = by_email.get(token) if "@" in token else by_local.get(token)
        if user_id is not None and user_id not in found:
            found.append(user_id)
    return found
