"""Tests for the pending approval store."""

from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from credproxy.exceptions import ApprovalAlreadyResolvedError, UnknownApprovalTokenError
from credproxy.pdp.decision import ApprovalDecision
from credproxy.pep.approval_store import PendingApprovalStore


@pytest.fixture
def store() -> PendingApprovalStore:
    return PendingApprovalStore(default_expiration_minutes=30)


class TestOpen:
    def test_creates_ticket(self, store, make_request) -> None:
        request = make_request("tx.send")

        ticket = store.open(request, "approve", approvers=("alice", "bob"))

        assert ticket.policy_id == "approve"
        assert ticket.request_id == request.request_id
        assert ticket.request_fingerprint == request.fingerprint()
        assert ticket.approvers == ("alice", "bob")
        assert ticket.expires_at - ticket.created_at == timedelta(minutes=30)
        assert not ticket.is_resolved
        assert len(ticket.token) >= 32

    def test_policy_expiration_overrides_default(self, store, make_request) -> None:
        ticket = store.open(make_request(), "approve", expiration_minutes=5)
        assert ticket.expires_at - ticket.created_at == timedelta(minutes=5)

    def test_reuses_open_ticket(self, store, make_request) -> None:
        first = store.open(make_request("tx.send"), "approve")
        second = store.open(make_request("tx.send"), "approve")

        assert first.token == second.token
        assert len(store) == 1

    def test_distinct_per_policy_and_request(self, store, make_request) -> None:
        a = store.open(make_request("tx.send"), "approve")
        b = store.open(make_request("tx.send"), "other-policy")
        c = store.open(make_request("tx.sign"), "approve")

        assert len({a.token, b.token, c.token}) == 3

    def test_concurrent_open_single_ticket(self, store, make_request) -> None:
        request = make_request("tx.send")
        tokens: list[str] = []
        lock = threading.Lock()

        def worker() -> None:
            token = store.open(request, "approve").token
            with lock:
                tokens.append(token)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(set(tokens)) == 1


class TestResolve:
    def test_resolve(self, store, make_request) -> None:
        token = store.open(make_request(), "approve").token

        ticket = store.resolve(token, "approved")

        assert ticket.decision is ApprovalDecision.APPROVED
        assert ticket.resolved_at is not None
        assert store.list_pending() == []

    def test_unknown_token(self, store) -> None:
        with pytest.raises(UnknownApprovalTokenError) as exc_info:
            store.resolve("nope", ApprovalDecision.APPROVED)
        assert exc_info.value.token == "nope"

    def test_resolve_twice(self, store, make_request) -> None:
        token = store.open(make_request(), "approve").token
        store.resolve(token, ApprovalDecision.DENIED)

        with pytest.raises(ApprovalAlreadyResolvedError, match="denied"):
            store.resolve(token, ApprovalDecision.APPROVED)

    def test_invalid_decision(self, store, make_request) -> None:
        token = store.open(make_request(), "approve").token
        with pytest.raises(ValueError):
            store.resolve(token, "maybe")

    def test_new_ticket_after_resolution(self, store, make_request) -> None:
        """Once resolved, the same request can be parked again."""
        first = store.open(make_request(), "approve").token
        store.resolve(first, "denied")

        second = store.open(make_request(), "approve").token

        assert second != first


class TestGrantAndConsume:
    def test_grant_for_matching_request(self, store, make_request) -> None:
        token = store.open(make_request("tx.send", {"to": "0x1"}), "approve").token
        store.resolve(token, "approved")

        assert store.grant_for(token, make_request("tx.send", {"to": "0x1"})) is not None

    def test_no_grant_while_pending(self, store, make_request) -> None:
        token = store.open(make_request(), "approve").token
        assert store.grant_for(token, make_request()) is None

    def test_no_grant_for_other_request(self, store, make_request) -> None:
        token = store.open(make_request("tx.send", {"to": "0x1"}), "approve").token
        store.resolve(token, "approved")

        assert store.grant_for(token, make_request("tx.send", {"to": "0x2"})) is None

    def test_no_grant_for_unknown(self, store, make_request) -> None:
        assert store.grant_for("nope", make_request()) is None

    def test_consume(self, store, make_request) -> None:
        token = store.open(make_request(), "approve").token
        store.resolve(token, "approved")

        store.consume(token)
        store.consume(token)

        assert store.get(token) is None
        assert len(store) == 0


class TestHousekeeping:
    def test_list_pending_oldest_first(self, store, make_request) -> None:
        a = store.open(make_request("a"), "approve")
        b = store.open(make_request("b"), "approve")
        store.resolve(store.open(make_request("c"), "approve").token, "approved")

        assert [t.token for t in store.list_pending()] == [a.token, b.token]

    def test_is_expired(self, store, make_request) -> None:
        ticket = store.open(make_request(), "approve", expiration_minutes=1)

        assert not ticket.is_expired(ticket.created_at)
        assert ticket.is_expired(ticket.created_at + timedelta(minutes=1))

    def test_clear(self, store, make_request) -> None:
        store.open(make_request(), "approve")
        store.clear()
        assert len(store) == 0
