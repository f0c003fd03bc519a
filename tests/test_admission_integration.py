"""Admission against a real Postgres (migrated schema required).

Covers what mocks cannot: all-or-nothing batches, serialization of
concurrent admissions for one room, the exclusion constraint and the
uniqueness of sequential ids under concurrency.

All concurrency tests use threading.Barrier so threads really race.
"""

import os
import threading
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal

import psycopg2.errors
import pytest

from roomledger.domain.admission import AdmissionRequest, admit_reservation
from roomledger.domain.errors import DateConflict
from roomledger.domain.identifiers import next_sequential_id
from roomledger.infra.db import get_conn, txn
from roomledger.infra.policy import BookingPolicy

DATABASE_URL = os.environ.get("DATABASE_URL")

pytestmark = pytest.mark.skipif(
    not DATABASE_URL,
    reason="DATABASE_URL not set - skipping DB integration tests",
)

STAY_START = date.today() + timedelta(days=30)


def _day(offset: int) -> str:
    return (STAY_START + timedelta(days=offset)).isoformat()


@pytest.fixture
def run_tag():
    return uuid.uuid4().hex[:8]


@pytest.fixture
def rooms(run_tag):
    """Three fresh rooms; everything booked on them is removed afterwards."""
    ids = [f"itest-{run_tag}-{n}" for n in range(1, 4)]
    conn = get_conn()
    try:
        with conn.cursor() as cur:
            for n, rid in enumerate(ids, start=1):
                cur.execute(
                    """
                    INSERT INTO resources (id, label, resource_type, status, base_price, capacity)
                    VALUES (%s, %s, 'DOUBLE', 'AVAILABLE', %s, 2)
                    """,
                    (rid, f"T{run_tag}-{n}", Decimal("1000") * n),
                )
        conn.commit()
    finally:
        conn.close()

    yield ids

    conn = get_conn()
    try:
        with conn.cursor() as cur:
            cur.execute(
                "ALTER TABLE reservation_history DISABLE TRIGGER trg_reservation_history_append_only"
            )
            cur.execute(
                """
                DELETE FROM reservation_history
                WHERE reservation_id IN (SELECT id FROM reservations WHERE resource_id = ANY(%s))
                """,
                (ids,),
            )
            cur.execute(
                "ALTER TABLE reservation_history ENABLE TRIGGER trg_reservation_history_append_only"
            )
            cur.execute(
                "SELECT DISTINCT occupant_id FROM reservations WHERE resource_id = ANY(%s)",
                (ids,),
            )
            occupant_ids = [row[0] for row in cur.fetchall()]
            cur.execute("DELETE FROM reservations WHERE resource_id = ANY(%s)", (ids,))
            cur.execute("DELETE FROM resource_slots WHERE resource_id = ANY(%s)", (ids,))
            cur.execute("DELETE FROM occupants WHERE id = ANY(%s::uuid[])", (occupant_ids,))
            cur.execute("DELETE FROM resources WHERE id = ANY(%s)", (ids,))
        conn.commit()
    finally:
        conn.close()


def _request(resource_ids, name, check_in=None, check_out=None):
    return AdmissionRequest(
        resource_ids=resource_ids,
        occupant_name=name,
        occupant_phone="9876543210",
        check_in=check_in or _day(0),
        check_out=check_out or _day(2),
    )


def _count(sql, params):
    with txn() as cur:
        cur.execute(sql, params)
        return cur.fetchone()[0]


class TestBatchAtomicity:
    def test_conflict_on_second_room_persists_nothing(self, rooms, run_tag):
        admit_reservation(_request([rooms[1]], f"Existing {run_tag}"))

        with pytest.raises(DateConflict) as exc_info:
            admit_reservation(_request([rooms[0], rooms[1]], f"Batch {run_tag}"))

        assert exc_info.value.resource_id == rooms[1]
        assert _count("SELECT count(*) FROM reservations WHERE resource_id = %s", (rooms[0],)) == 0
        assert _count("SELECT count(*) FROM resource_slots WHERE resource_id = %s", (rooms[0],)) == 0
        assert _count("SELECT count(*) FROM occupants WHERE name = %s", (f"Batch {run_tag}",)) == 0

    def test_batch_commits_every_room_with_audit(self, rooms, run_tag):
        result = admit_reservation(_request(rooms[:2], f"Pair {run_tag}"))

        ids = [r["id"] for r in result.reservations]
        assert len(set(ids)) == 2
        assert _count(
            "SELECT count(*) FROM reservation_history WHERE reservation_id = ANY(%s) AND action = 'CREATED'",
            (ids,),
        ) == 2
        assert _count(
            "SELECT count(DISTINCT occupant_id) FROM reservations WHERE id = ANY(%s)", (ids,)
        ) == 1

    def test_check_in_on_checkout_day(self, rooms, run_tag):
        admit_reservation(
            _request(
                [rooms[0]],
                f"First {run_tag}",
                check_in=f"{_day(0)}T14:00:00",
                check_out=f"{_day(2)}T11:00:00",
            )
        )

        result = admit_reservation(
            _request(
                [rooms[0]],
                f"Second {run_tag}",
                check_in=f"{_day(2)}T09:00:00",
                check_out=f"{_day(4)}T11:00:00",
            )
        )

        assert result.status == "CONFIRMED"


class TestConcurrentAdmission:
    def test_same_room_exactly_one_wins(self, rooms, run_tag):
        num_threads = 5
        results = {"success": 0, "conflict": 0, "error": 0}
        results_lock = threading.Lock()
        barrier = threading.Barrier(num_threads)

        def try_admit(i):
            barrier.wait()
            try:
                admit_reservation(_request([rooms[2]], f"Racer {i} {run_tag}"))
                outcome = "success"
            except DateConflict:
                outcome = "conflict"
            except Exception:
                outcome = "error"
            with results_lock:
                results[outcome] += 1

        threads = [threading.Thread(target=try_admit, args=(i,)) for i in range(num_threads)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        assert results == {"success": 1, "conflict": num_threads - 1, "error": 0}

    def test_sequential_ids_unique_under_concurrency(self, run_tag):
        prefix = f"T{run_tag.upper()}"
        policy = BookingPolicy(id_prefix=prefix)
        num_threads, per_thread = 8, 125
        generated: list[str] = []
        lock = threading.Lock()
        barrier = threading.Barrier(num_threads)

        def allocate():
            barrier.wait()
            local = []
            for _ in range(per_thread):
                with txn() as cur:
                    local.append(next_sequential_id(cur, policy=policy))
            with lock:
                generated.extend(local)

        threads = [threading.Thread(target=allocate) for _ in range(num_threads)]
        try:
            for t in threads:
                t.start()
            for t in threads:
                t.join(timeout=120)

            assert len(generated) == num_threads * per_thread
            assert len(set(generated)) == len(generated)
        finally:
            with txn() as cur:
                cur.execute("DELETE FROM id_counters WHERE prefix = %s", (prefix,))


class TestExclusionConstraint:
    def _insert(self, cur, rid, occupant_id, reservation_id, check_in, check_out):
        cur.execute(
            """
            INSERT INTO reservations (
                id, reference, resource_id, occupant_id, check_in, check_out,
                subtotal, total_amount, status
            )
            VALUES (%s, %s, %s, %s, %s, %s, 0, 0, 'CONFIRMED')
            """,
            (reservation_id, reservation_id, rid, occupant_id, check_in, check_out),
        )

    def test_overlap_rejected_turnover_allowed(self, rooms, run_tag):
        start = datetime.combine(STAY_START, datetime.min.time())
        conn = get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO occupants (name, phone) VALUES (%s, %s) RETURNING id",
                    (f"Direct {run_tag}", "9876543210"),
                )
                occupant_id = cur.fetchone()[0]
                self._insert(
                    cur, rooms[0], occupant_id, f"X{run_tag}1",
                    start + timedelta(hours=14), start + timedelta(days=2, hours=11),
                )
                # check-in on the checkout day is compatible
                self._insert(
                    cur, rooms[0], occupant_id, f"X{run_tag}2",
                    start + timedelta(days=2, hours=9), start + timedelta(days=3, hours=11),
                )
            conn.commit()

            with pytest.raises(psycopg2.errors.ExclusionViolation):
                with conn.cursor() as cur:
                    self._insert(
                        cur, rooms[0], occupant_id, f"X{run_tag}3",
                        start + timedelta(days=1), start + timedelta(days=2),
                    )
            conn.rollback()
        finally:
            conn.close()
