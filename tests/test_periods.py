"""Tests for bi-weekly period resolution."""

from datetime import date, datetime

import pytest
from sqlalchemy.orm import sessionmaker

from commission_service.database import Base, make_engine
from commission_service.errors import ValidationError
from commission_service.models import Period
from commission_service.periods import days_in_month, parse_day, period_range, resolve_period
from commission_service.storage.sql import SqlStore


class TestPeriodRange:
    def test_first_half(self):
        assert period_range(date(2024, 3, 1)) == (date(2024, 3, 1), date(2024, 3, 15))
        assert period_range(date(2024, 3, 15)) == (date(2024, 3, 1), date(2024, 3, 15))

    def test_second_half_of_31_day_month(self):
        assert period_range(date(2024, 3, 16)) == (date(2024, 3, 16), date(2024, 3, 31))

    def test_second_half_of_30_day_month(self):
        assert period_range(date(2024, 4, 30)) == (date(2024, 4, 16), date(2024, 4, 30))

    def test_february_leap_year(self):
        assert period_range(date(2024, 2, 20)) == (date(2024, 2, 16), date(2024, 2, 29))

    def test_february_common_year(self):
        assert period_range(date(2023, 2, 16)) == (date(2023, 2, 16), date(2023, 2, 28))

    def test_december(self):
        assert period_range("2023-12-31") == (date(2023, 12, 16), date(2023, 12, 31))

    @pytest.mark.parametrize("year,month", [(2023, 1), (2023, 2), (2024, 2), (2024, 4), (1900, 2), (2000, 2)])
    def test_every_second_half_day_shares_one_range(self, year, month):
        last = days_in_month(year, month)
        ranges = {period_range(date(year, month, d)) for d in range(16, last + 1)}
        assert ranges == {(date(year, month, 16), date(year, month, last))}

    def test_days_in_month(self):
        assert days_in_month(2024, 2) == 29
        assert days_in_month(1900, 2) == 28
        assert days_in_month(2000, 2) == 29
        assert days_in_month(2024, 11) == 30


class TestParseDay:
    def test_string(self):
        assert parse_day("2024-03-10") == date(2024, 3, 10)

    def test_iso_timestamp_keeps_calendar_day(self):
        # No timezone conversion: the written day is the day used.
        assert parse_day("2024-03-15T23:30:00-03:00") == date(2024, 3, 15)

    def test_datetime(self):
        assert parse_day(datetime(2024, 3, 16, 0, 5)) == date(2024, 3, 16)

    @pytest.mark.parametrize("value", ["", "2024-02-30", "10/03/2024", None, 20240310])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            parse_day(value)


class TestResolvePeriod:
    def test_creates_unpaid_period_with_zero_totals(self, store):
        with store.transaction():
            period = resolve_period(store, "2024-03-10")

        assert period.start_date == date(2024, 3, 1)
        assert period.end_date == date(2024, 3, 15)
        assert period.paid is False
        assert period.paid_at is None
        assert period.total_orders == 0
        assert period.total_service_value == 0
        assert period.total_commission == 0

    def test_same_half_month_same_period(self, store):
        with store.transaction():
            first = resolve_period(store, "2024-03-01")
            second = resolve_period(store, date(2024, 3, 15))
        assert first.id == second.id
        assert len(store.list_periods()) == 1

    def test_idempotent_across_transactions(self, store):
        with store.transaction():
            first_id = resolve_period(store, "2024-02-16").id
        with store.transaction():
            second_id = resolve_period(store, "2024-02-29").id
        assert first_id == second_id
        assert store.get_period(first_id).end_date == date(2024, 2, 29)

    def test_different_halves_different_periods(self, store):
        with store.transaction():
            first = resolve_period(store, "2024-03-15")
            second = resolve_period(store, "2024-03-16")
        assert first.id != second.id
        assert len(store.list_periods()) == 2

    def test_create_period_for_existing_bucket_returns_existing(self, store):
        # What a caller that lost the get-or-create race ends up doing.
        with store.transaction():
            winner = store.create_period(date(2024, 5, 1), date(2024, 5, 15))
            loser = store.create_period(date(2024, 5, 1), date(2024, 5, 15))
            winner_id = winner.id
            assert loser.id == winner_id

        periods = store.list_periods()
        assert [p.id for p in periods] == [winner_id]

    def test_rolled_back_transaction_leaves_no_period(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction():
                resolve_period(store, "2024-07-01")
                raise RuntimeError("boom")
        assert store.list_periods() == []


class TestConcurrentResolve:
    """Two sessions on one SQLite file resolving the same half-month."""

    @pytest.fixture
    def file_engine(self, tmp_path):
        engine = make_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
        Base.metadata.create_all(bind=engine)
        yield engine
        engine.dispose()

    @pytest.fixture
    def two_stores(self, file_engine):
        factory = sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
        first, second = factory(), factory()
        yield SqlStore(first), SqlStore(second)
        first.close()
        second.close()

    def test_second_session_reuses_committed_period(self, two_stores, file_engine):
        first, second = two_stores

        with first.transaction():
            first_id = resolve_period(first, "2024-03-02").id
        with second.transaction():
            second_id = resolve_period(second, "2024-03-14").id

        assert first_id == second_id
        check = sessionmaker(bind=file_engine)()
        try:
            assert [r.id for r in check.query(Period).all()] == [first_id]
        finally:
            check.close()

    def test_session_that_loses_the_race_reads_the_winner(self, two_stores, file_engine, monkeypatch):
        first, second = two_stores
        real_find = second.find_period
        lookups = []

        def find_before_winner_commits(start, end):
            # The first lookup happens before the other session has committed.
            lookups.append((start, end))
            return None if len(lookups) == 1 else real_find(start, end)

        monkeypatch.setattr(second, "find_period", find_before_winner_commits)

        with first.transaction():
            winner_id = resolve_period(first, "2024-03-20").id
        with second.transaction():
            loser = resolve_period(second, "2024-03-31")
            loser_id = loser.id

        assert loser_id == winner_id
        assert len(lookups) == 2
        check = sessionmaker(bind=file_engine)()
        try:
            assert [r.id for r in check.query(Period).all()] == [winner_id]
        finally:
            check.close()
