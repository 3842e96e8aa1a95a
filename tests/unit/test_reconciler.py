"""Unit tests for last-writer-wins reconciliation."""

from datetime import datetime

import pytest

from shelfsync.core.models import BookCollection
from shelfsync.core.reconciler import reconcile


class TestPresence:
    def test_nothing_on_either_side(self):
        assert reconcile(None, None) is None

    def test_remote_only_is_adopted(self, make_book):
        remote = make_book()
        assert reconcile(None, remote) is remote

    def test_local_only_is_kept_when_not_deleted(self, make_book):
        local = make_book()
        assert reconcile(local, None) is local

    def test_local_only_is_dropped_after_confirmed_delete(self, make_book):
        assert reconcile(make_book(), None, deleted_remotely=True) is None

    def test_remote_copy_survives_a_stale_tombstone(self, make_book):
        remote = make_book(minutes=10)
        assert reconcile(make_book(minutes=5), remote, deleted_remotely=True) == remote


class TestLastWriterWins:
    def test_reconcile_is_idempotent(self, make_book, make_partnership):
        book = make_book(shared_with_partner=True)
        partnership = make_partnership(shared=True, shared_book_ids=["B1", "B2"])

        assert reconcile(book, book) == book
        assert reconcile(partnership, partnership) == partnership

        merged = reconcile(book, make_book(minutes=-5))
        assert reconcile(merged, merged) == merged

    def test_newer_remote_wins_wholesale(self, make_book):
        local = make_book("B2", minutes=5, current_page=40, user_notes="local note")
        remote = make_book("B2", minutes=10, current_page=100)

        merged = reconcile(local, remote)

        assert merged == remote
        assert merged.current_page == 100
        assert merged.user_notes is None

    def test_newer_local_wins_wholesale(self, make_book):
        local = make_book(minutes=20, current_page=250)
        remote = make_book(minutes=10, current_page=100)
        assert reconcile(local, remote) == local

    @pytest.mark.parametrize("older,newer", [(0, 1), (5, 500), (-60, 0)])
    def test_merge_is_commutative(self, make_book, older, newer):
        a = make_book(minutes=older, current_page=10, shared_with_partner=True)
        b = make_book(minutes=newer, current_page=90)

        forward = reconcile(a, b)
        backward = reconcile(b, a)

        assert forward == backward
        assert forward.current_page == 90
        assert forward.last_modified_at == b.last_modified_at

    def test_equal_timestamps_prefer_remote(self, make_book):
        local = make_book(minutes=3, title="Local Title")
        remote = make_book(minutes=3, title="Remote Title")
        assert reconcile(local, remote).title == "Remote Title"

    def test_missing_timestamp_keeps_local(self, make_book):
        local = make_book(current_page=12)
        local.last_modified_at = None
        remote = make_book(minutes=100, current_page=300)

        assert reconcile(local, remote) == local

    def test_naive_and_aware_timestamps_compare(self, make_book):
        local = make_book()
        local.last_modified_at = datetime(2024, 3, 1, 13, 0)  # naive, treated as UTC
        remote = make_book(minutes=30)

        assert reconcile(local, remote) is local

    def test_mismatched_types_keep_local(self, make_book):
        local = make_book("X1")
        remote = BookCollection(id="X1", owner_id=local.owner_id, name="Shelf",
                                last_modified_at=make_book(minutes=50).last_modified_at)
        assert reconcile(local, remote) is local


class TestMonotonicFields:
    def test_shared_flag_is_never_downgraded(self, make_partnership):
        local = make_partnership(minutes=0, shared=True)
        remote = make_partnership(minutes=30, shared=False)

        merged = reconcile(local, remote)

        assert merged.shared is True
        assert merged.last_modified_at == remote.last_modified_at

    def test_shared_with_partner_is_ored_for_books(self, make_book):
        local = make_book(minutes=30, shared_with_partner=False)
        remote = make_book(minutes=0, shared_with_partner=True)

        assert reconcile(local, remote).shared_with_partner is True

    def test_shared_book_ids_are_unioned_in_winner_order(self, make_partnership):
        local = make_partnership(minutes=0, shared_book_ids=["B1", "B3"])
        remote = make_partnership(minutes=10, shared_book_ids=["B2", "B1"])

        assert reconcile(local, remote).shared_book_ids == ["B2", "B1", "B3"]
        assert reconcile(remote, local).shared_book_ids == ["B2", "B1", "B3"]

    def test_inputs_are_not_mutated(self, make_partnership):
        local = make_partnership(minutes=0, shared=True, shared_book_ids=["B1"])
        remote = make_partnership(minutes=10, shared=False, shared_book_ids=["B2"])

        reconcile(local, remote)

        assert remote.shared is False
        assert remote.shared_book_ids == ["B2"]
