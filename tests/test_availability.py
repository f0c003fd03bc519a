"""Unit tests for availability resolution.

The repository functions are patched so these run without Postgres.
"""

from datetime import datetime
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from roomledger.domain.availability import (
    ACTIVE_STATUSES,
    blocks_check_in,
    check_conflict,
    first_blocking,
    list_availability,
)
from roomledger.infra.repositories.reservations_repository import find_overlapping

MODULE = "roomledger.domain.availability"


def _resource(rid="r-101", status="AVAILABLE", label="101"):
    return {
        "id": rid,
        "label": label,
        "resource_type": "DOUBLE",
        "status": status,
        "base_price": Decimal("1000"),
        "capacity": 2,
    }


def _candidate(rid="r-101", res_id="RES0001", check_in=None, check_out=None):
    return {
        "id": res_id,
        "resource_id": rid,
        "check_in": check_in or datetime(2025, 1, 1, 14),
        "check_out": check_out or datetime(2025, 1, 3, 11),
        "status": "CONFIRMED",
    }


@pytest.fixture
def cur():
    """Mocked psycopg2 cursor."""
    return MagicMock()


class TestBlocksCheckIn:
    def test_checkout_day_is_free(self):
        assert not blocks_check_in(datetime(2025, 1, 3, 11), datetime(2025, 1, 3, 14))

    def test_checkout_day_free_even_for_morning_check_in(self):
        assert not blocks_check_in(datetime(2025, 1, 3, 11), datetime(2025, 1, 3, 9))

    def test_later_checkout_blocks(self):
        assert blocks_check_in(datetime(2025, 1, 3, 11), datetime(2025, 1, 2, 14))


class TestCheckConflict:
    def test_missing_resource(self, cur):
        with patch(f"{MODULE}.get_resource", return_value=None):
            result = check_conflict(
                cur,
                resource_id="nope",
                check_in=datetime(2025, 1, 2),
                check_out=datetime(2025, 1, 4),
            )

        assert not result.available
        assert result.reason == "not_found"

    def test_out_of_service_skips_reservation_query(self, cur):
        with patch(f"{MODULE}.get_resource", return_value=_resource(status="OUT_OF_SERVICE")), \
             patch(f"{MODULE}.find_overlapping") as mock_find:
            result = check_conflict(
                cur,
                resource_id="r-101",
                check_in=datetime(2025, 1, 2),
                check_out=datetime(2025, 1, 4),
            )

        assert result.reason == "out_of_service"
        mock_find.assert_not_called()

    def test_no_candidates_available(self, cur):
        with patch(f"{MODULE}.get_resource", return_value=_resource()), \
             patch(f"{MODULE}.find_overlapping", return_value=[]) as mock_find:
            result = check_conflict(
                cur,
                resource_id="r-101",
                check_in=datetime(2025, 1, 2),
                check_out=datetime(2025, 1, 4),
            )

        assert result.available
        assert result.reason is None
        kwargs = mock_find.call_args.kwargs
        assert kwargs["statuses"] == ACTIVE_STATUSES
        assert kwargs["resource_id"] == "r-101"

    def test_overlap_mid_stay_conflicts(self, cur):
        """Existing Jan1 14:00 - Jan3 11:00, requested Jan2 14:00 - Jan4 11:00."""
        with patch(f"{MODULE}.get_resource", return_value=_resource()), \
             patch(f"{MODULE}.find_overlapping", return_value=[_candidate()]):
            result = check_conflict(
                cur,
                resource_id="r-101",
                check_in=datetime(2025, 1, 2, 14),
                check_out=datetime(2025, 1, 4, 11),
            )

        assert not result.available
        assert result.reason == "date_conflict"
        assert result.conflicting_reservation["id"] == "RES0001"

    def test_check_in_on_checkout_day_is_allowed(self, cur):
        """Existing Jan1 14:00 - Jan3 11:00, requested Jan3 09:00 - Jan5 11:00.

        The intervals overlap by two hours but the checkout day is free.
        """
        with patch(f"{MODULE}.get_resource", return_value=_resource()), \
             patch(f"{MODULE}.find_overlapping", return_value=[_candidate()]):
            result = check_conflict(
                cur,
                resource_id="r-101",
                check_in=datetime(2025, 1, 3, 9),
                check_out=datetime(2025, 1, 5, 11),
            )

        assert result.available

    def test_first_blocking_candidate_reported(self, cur):
        candidates = [
            _candidate(res_id="RES0001", check_out=datetime(2025, 1, 3, 11)),
            _candidate(
                res_id="RES0002",
                check_in=datetime(2025, 1, 3, 14),
                check_out=datetime(2025, 1, 6, 11),
            ),
        ]
        with patch(f"{MODULE}.get_resource", return_value=_resource()), \
             patch(f"{MODULE}.find_overlapping", return_value=candidates):
            result = check_conflict(
                cur,
                resource_id="r-101",
                check_in=datetime(2025, 1, 3, 12),
                check_out=datetime(2025, 1, 5, 11),
            )

        assert result.conflicting_reservation["id"] == "RES0002"

    def test_exclude_reservation_passed_through(self, cur):
        with patch(f"{MODULE}.get_resource", return_value=_resource()), \
             patch(f"{MODULE}.find_overlapping", return_value=[]) as mock_find:
            check_conflict(
                cur,
                resource_id="r-101",
                check_in=datetime(2025, 1, 2),
                check_out=datetime(2025, 1, 4),
                exclude_reservation_id="RES0009",
            )

        assert mock_find.call_args.kwargs["exclude_reservation_id"] == "RES0009"

    def test_prefetched_resource_not_refetched(self, cur):
        with patch(f"{MODULE}.get_resource") as mock_get, \
             patch(f"{MODULE}.find_overlapping", return_value=[]):
            check_conflict(
                cur,
                resource_id="r-101",
                check_in=datetime(2025, 1, 2),
                check_out=datetime(2025, 1, 4),
                resource=_resource(),
            )

        mock_get.assert_not_called()


class TestListAvailability:
    def test_derives_status_per_resource(self, cur):
        resources = [
            _resource("r-101", label="101"),
            _resource("r-102", label="102"),
            _resource("r-103", label="103", status="OUT_OF_SERVICE"),
            _resource("r-104", label="104"),
        ]
        candidates = [
            _candidate("r-101", "RES0001", check_out=datetime(2025, 1, 4, 11)),
            _candidate("r-101", "RES0002", check_out=datetime(2025, 1, 6, 11)),
            # ends on the requested check-in day: not blocking
            _candidate("r-104", "RES0003", check_out=datetime(2025, 1, 3, 11)),
        ]
        with patch(f"{MODULE}.find_overlapping", return_value=candidates), \
             patch(f"{MODULE}.list_resources", return_value=resources):
            listing = list_availability(
                cur, check_in=datetime(2025, 1, 3, 14), check_out=datetime(2025, 1, 5, 11)
            )

        by_id = {r["id"]: r for r in listing["resources"]}
        assert by_id["r-101"]["availability"] == "BOOKED"
        assert by_id["r-101"]["check_out_at"] == datetime(2025, 1, 6, 11)
        assert by_id["r-102"]["availability"] == "AVAILABLE"
        assert by_id["r-103"]["availability"] == "OUT_OF_SERVICE"
        assert by_id["r-104"]["availability"] == "AVAILABLE"
        assert listing["booked_count"] == 1
        assert listing["available_count"] == 2


class TestTurnoverPair:
    """Existing stay [Jan 1 14:00, Jan 3 11:00) against two requests.

    A request starting on the checkout day is accepted; one inside the
    stay is rejected. The repository fake applies the same half-open
    predicate as the SQL (existing.check_in < check_out AND
    existing.check_out > check_in).
    """

    EXISTING = _candidate(check_in=datetime(2025, 1, 1, 14), check_out=datetime(2025, 1, 3, 11))

    def _overlapping(self, cur, *, check_in, check_out, **kwargs):
        rows = [self.EXISTING]
        return [r for r in rows if r["check_in"] < check_out and r["check_out"] > check_in]

    def _check(self, cur, check_in, check_out):
        with patch(f"{MODULE}.get_resource", return_value=_resource()), \
             patch(f"{MODULE}.find_overlapping", side_effect=self._overlapping):
            return check_conflict(
                cur, resource_id="r-101", check_in=check_in, check_out=check_out
            )

    def test_checkout_day_request_accepted(self, cur):
        result = self._check(cur, datetime(2025, 1, 3), datetime(2025, 1, 4))

        assert result.available
        assert result.reason is None

    def test_mid_stay_request_rejected(self, cur):
        result = self._check(cur, datetime(2025, 1, 2), datetime(2025, 1, 2, 23, 59))

        assert not result.available
        assert result.reason == "date_conflict"
        assert result.conflicting_reservation["id"] == "RES0001"

    def test_first_blocking_on_the_pair(self):
        assert first_blocking([self.EXISTING], datetime(2025, 1, 3)) is None
        assert first_blocking([self.EXISTING], datetime(2025, 1, 2)) is self.EXISTING

    def test_sql_binds_bounds_half_open(self, cur):
        cur.fetchall.return_value = []
        check_in, check_out = datetime(2025, 1, 3), datetime(2025, 1, 4)

        find_overlapping(
            cur, check_in=check_in, check_out=check_out, statuses=ACTIVE_STATUSES
        )

        sql, params = cur.execute.call_args.args
        assert "check_in < %s" in sql
        assert "check_out > %s" in sql
        assert params[1:3] == [check_out, check_in]
