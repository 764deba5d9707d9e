"""Sync outbox queueing and flush retry behaviour."""

from workplan.services.sync_outbox import CHANGES, INITIATIVES, SyncOutbox


class _Sink:
    def __init__(self, fail_on=(), reject_on=()):
        self.fail_on = set(fail_on)
        self.reject_on = set(reject_on)
        self.batches = []

    def __call__(self, kind, items):
        if kind in self.fail_on:
            raise ConnectionError("sheet unavailable")
        if kind in self.reject_on:
            return False
        self.batches.append((kind, [dict(i) for i in items]))
        return True


class TestSyncOutbox:
    def test_latest_snapshot_wins(self):
        outbox = SyncOutbox()
        outbox.queue_initiative({"id": "i1", "priority": "P1"})
        outbox.queue_initiative({"id": "i1", "priority": "P0"})
        assert outbox.pending_count == 1

        sink = _Sink()
        result = outbox.flush(sink)

        assert sink.batches == [(INITIATIVES, [{"id": "i1", "priority": "P0"}])]
        assert result["sent"] == {INITIATIVES: 1, CHANGES: 0}
        assert result["pending"] == 0

    def test_changes_keep_order(self):
        outbox = SyncOutbox()
        for n in range(3):
            outbox.queue_change({"id": n})
        sink = _Sink()
        outbox.flush(sink)
        assert [c["id"] for c in sink.batches[0][1]] == [0, 1, 2]

    def test_failed_batch_is_requeued(self):
        outbox = SyncOutbox()
        outbox.queue_initiative({"id": "i1"})
        outbox.queue_change({"id": 1})

        result = outbox.flush(_Sink(fail_on={CHANGES}))
        assert result["errors"] == [CHANGES]
        assert result["pending"] == 1
        assert outbox.status()["last_errors"] == [CHANGES]

        sink = _Sink()
        outbox.flush(sink)
        assert sink.batches == [(CHANGES, [{"id": 1}])]
        assert outbox.pending_count == 0

    def test_rejected_batch_is_requeued(self):
        outbox = SyncOutbox()
        outbox.queue_initiative({"id": "i1", "v": 1})
        outbox.flush(_Sink(reject_on={INITIATIVES}))
        assert outbox.status()["pending_initiatives"] == 1

    def test_change_log_feeds_outbox(self, app, users, client):
        outbox = app.extensions["sync_outbox"]
        headers = {"X-User-Email": users["lead"].email}
        created = client.post("/api/v1/initiatives", json={"title": "Synced", "eta": "2099-01-01"},
                              headers=headers).get_json()
        client.patch(f"/api/v1/initiatives/{created['id']}", json={"field": "priority", "value": "P0"},
                     headers=headers)

        status = outbox.status()
        assert status["pending_initiatives"] == 1
        assert status["pending_changes"] == 1

        res = client.get("/api/v1/metrics/sync")
        assert res.get_json()["pending_changes"] == 1
