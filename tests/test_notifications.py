"""
@mention parsing, comment notifications and the notification inbox.

Covers:
  - mention parsing (full e-mail, local part, ordering, duplicates)
  - on_comment_added fan-out and owner de-duplication
  - NotificationService list / unread / mark read
  - notification API
"""

from types import SimpleNamespace

from workplan.models import db
from workplan.models.notification import NotificationType
from workplan.services import notification as notify
from workplan.services.mentions import parse_mentions
from workplan.services.notification import NotificationService

PEOPLE = [
    SimpleNamespace(id="u1", email="jane.doe@example.com", name="Jane Doe"),
    SimpleNamespace(id="u2", email="sam.lee@example.com", name="Sam Lee"),
    SimpleNamespace(id="u3", email="sam@other.example.org", name="Sam Other"),
]


# ═══════════════════════════════════════════════════════════════════════════════
# 1. MENTIONS
# ═══════════════════════════════════════════════════════════════════════════════


class TestParseMentions:
    def test_full_email(self):
        assert parse_mentions("ping @Sam.Lee@Example.com", PEOPLE) == ["u2"]

    def test_local_part(self):
        assert parse_mentions("@jane.doe and @sam.lee.", PEOPLE) == ["u1", "u2"]

    def test_local_part_must_match_exactly(self):
        assert parse_mentions("@jane", PEOPLE) == []

    def test_duplicates_collapse_in_order(self):
        assert parse_mentions("@sam.lee @jane.doe @sam.lee", PEOPLE) == ["u2", "u1"]

    def test_plain_email_is_not_a_mention(self):
        assert parse_mentions("mail jane.doe@example.com", PEOPLE) == []

    def test_unknown_and_empty(self):
        assert parse_mentions("@nobody", PEOPLE) == []
        assert parse_mentions("", PEOPLE) == []
        assert parse_mentions(None, PEOPLE) == []

    def test_full_email_on_other_domain(self):
        assert parse_mentions("@sam@other.example.org", PEOPLE) == ["u3"]


# ═══════════════════════════════════════════════════════════════════════════════
# 2. COMMENT FAN-OUT
# ═══════════════════════════════════════════════════════════════════════════════


def _initiative(owner_id="u1"):
    return SimpleNamespace(id="i1", title="Consolidate ledgers", owner_id=owner_id)


def _comment(author_id, mentions):
    return {"id": "c1", "text": "hello", "author_id": author_id, "mentioned_user_ids": mentions}


class TestOnCommentAdded:
    def test_non_owner_comment_notifies_owner(self):
        notes = notify.on_comment_added(_initiative(), _comment("u2", []), PEOPLE)
        assert [(n.type, n.user_id) for n in notes] == [(NotificationType.NEW_COMMENT.value, "u1")]
        assert "Sam Lee" in notes[0].message

    def test_owner_comment_notifies_nobody(self):
        assert notify.on_comment_added(_initiative(), _comment("u1", []), PEOPLE) == []

    def test_one_mention_per_user(self):
        notes = notify.on_comment_added(_initiative(), _comment("u1", ["u2", "u3"]), PEOPLE)
        assert [(n.type, n.user_id) for n in notes] == [
            (NotificationType.MENTION.value, "u2"),
            (NotificationType.MENTION.value, "u3"),
        ]

    def test_owner_mention_suppressed_after_new_comment(self):
        notes = notify.on_comment_added(_initiative(), _comment("u2", ["u1", "u3"]), PEOPLE)
        assert [(n.type, n.user_id) for n in notes] == [
            (NotificationType.NEW_COMMENT.value, "u1"),
            (NotificationType.MENTION.value, "u3"),
        ]

    def test_email_owner_reference(self):
        initiative = _initiative(owner_id="Jane.Doe@example.com")
        notes = notify.on_comment_added(initiative, _comment("u1", ["u1"]), PEOPLE)
        # Author is the owner, so the self-mention still gets through
        assert [(n.type, n.user_id) for n in notes] == [(NotificationType.MENTION.value, "u1")]


# ═══════════════════════════════════════════════════════════════════════════════
# 3. INBOX
# ═══════════════════════════════════════════════════════════════════════════════


def _seed(user_id, count):
    notes = [
        notify.build_overlooked(SimpleNamespace(id=f"i{n}", title=f"Item {n}", owner_id=user_id,
                                                overlooked_count=3))
        for n in range(count)
    ]
    NotificationService.save_all(notes)
    db.session.commit()
    return notes


class TestNotificationService:
    def test_list_and_unread(self):
        _seed("u1", 3)
        _seed("u2", 1)
        items, total = NotificationService.list_for_user("u1")
        assert total == 3
        assert NotificationService.unread_count("u1") == 3

    def test_mark_read_only_own(self):
        note = _seed("u1", 1)[0]
        assert NotificationService.mark_read(note.id, "u2") is None
        assert NotificationService.mark_read(note.id, "u1").is_read
        assert NotificationService.unread_count("u1") == 0

    def test_mark_all_read(self):
        _seed("u1", 2)
        assert NotificationService.mark_all_read("u1") == 2
        items, total = NotificationService.list_for_user("u1", unread_only=True)
        assert total == 0


class TestNotificationAPI:
    def test_inbox_requires_user(self, client):
        assert client.get("/api/v1/notifications").status_code == 401

    def test_inbox_flow(self, client, users):
        lead = users["lead"]
        _seed(lead.id, 2)
        headers = {"X-User-Email": lead.email}

        res = client.get("/api/v1/notifications", headers=headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["total"] == 2
        assert body["unread_count"] == 2

        note_id = body["items"][0]["id"]
        res = client.patch(f"/api/v1/notifications/{note_id}/read", headers=headers)
        assert res.status_code == 200
        assert res.get_json()["read"] is True

        res = client.post("/api/v1/notifications/mark-all-read", headers=headers)
        assert res.get_json()["marked"] == 1
        assert client.get("/api/v1/notifications/unread-count", headers=headers).get_json() == {"unread_count": 0}

    def test_someone_elses_notification_is_404(self, client, users):
        note = _seed("admin", 1)[0]
        res = client.patch(f"/api/v1/notifications/{note.id}/read",
                           headers={"X-User-Email": users["lead"].email})
        assert res.status_code == 404
