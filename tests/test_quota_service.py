"""
Unit tests for the quota ledger.
Tests reservation, commit/release, idempotent decrement, activation and concurrency.
"""
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from conftest import make_subscription
from resumeai.core.errors import NoActiveSubscription, QuotaExhausted, RowNotFound, SubscriptionConflict
from resumeai.db.base import Base
from resumeai.db.models.quota_debit import QuotaDebit
from resumeai.db.models.subscription import Subscription, SubscriptionStatus
from resumeai.db.models.user import User
from resumeai.services import quota_service


def _remaining(db, subscription_id):
    db.expire_all()
    return db.query(Subscription).filter(Subscription.id == subscription_id).one().resumes_remaining


# ✅ ACTIVE SUBSCRIPTION LOOKUP

def test_no_active_subscription(db, test_user):
    assert quota_service.get_active_subscription(db, test_user.id) is None


def test_expired_subscription_is_not_active(db, test_user):
    make_subscription(db, test_user.id, days_left=-1)
    assert quota_service.get_active_subscription(db, test_user.id) is None


def test_pending_subscription_is_not_active(db, test_user):
    make_subscription(db, test_user.id, status=SubscriptionStatus.PENDING)
    assert quota_service.get_active_subscription(db, test_user.id) is None


def test_get_subscription_missing(db):
    with pytest.raises(RowNotFound):
        quota_service.get_subscription(db, 404)


# ✅ RESERVE / COMMIT / RELEASE

def test_check_and_reserve_takes_one_unit(db, test_user, active_subscription):
    reservation = quota_service.check_and_reserve(db, test_user.id)

    assert reservation.subscription_id == active_subscription.id
    assert reservation.remaining_after == 9
    assert _remaining(db, active_subscription.id) == 9


def test_check_and_reserve_without_subscription(db, test_user):
    with pytest.raises(NoActiveSubscription):
        quota_service.check_and_reserve(db, test_user.id)


def test_check_and_reserve_exhausted(db, test_user):
    sub = make_subscription(db, test_user.id, remaining=0)

    with pytest.raises(QuotaExhausted):
        quota_service.check_and_reserve(db, test_user.id)

    assert _remaining(db, sub.id) == 0


def test_commit_reservation_is_idempotent(db, test_user, active_subscription):
    reservation = quota_service.check_and_reserve(db, test_user.id)

    assert quota_service.commit_reservation(db, reservation, "generation:1") is True
    assert quota_service.commit_reservation(db, reservation, "generation:1") is False

    assert db.query(QuotaDebit).count() == 1
    assert _remaining(db, active_subscription.id) == 9


def test_release_reservation_restores_quota(db, test_user, active_subscription):
    reservation = quota_service.check_and_reserve(db, test_user.id)
    assert quota_service.release_reservation(db, reservation) is True

    assert _remaining(db, active_subscription.id) == 10
    assert db.query(QuotaDebit).count() == 0


def test_release_skips_cancelled_subscription(db, test_user, active_subscription):
    reservation = quota_service.check_and_reserve(db, test_user.id)
    quota_service.set_status(db, active_subscription, SubscriptionStatus.CANCELLED)

    assert quota_service.release_reservation(db, reservation) is False
    assert _remaining(db, active_subscription.id) == 9


def test_release_does_not_top_up_reactivated_subscription(db, test_user):
    sub = make_subscription(db, test_user.id, remaining=0, status=SubscriptionStatus.PENDING)
    quota_service.activate(db, sub.id, 10)
    reservation = quota_service.check_and_reserve(db, test_user.id)
    assert reservation.activation_count == 1

    # Plan bought again on the same row while the generation was running
    quota_service.set_status(db, quota_service.get_subscription(db, sub.id), SubscriptionStatus.FAILED)
    quota_service.activate(db, sub.id, 10)

    assert quota_service.release_reservation(db, reservation) is False
    assert _remaining(db, sub.id) == 10



# ✅ DECREMENT

def test_decrement_once_per_key(db, test_user, active_subscription):
    assert quota_service.decrement(db, active_subscription.id, "retry-key") is True
    assert quota_service.decrement(db, active_subscription.id, "retry-key") is False

    assert _remaining(db, active_subscription.id) == 9


def test_decrement_never_goes_negative(db, test_user):
    sub = make_subscription(db, test_user.id, remaining=1)

    assert quota_service.decrement(db, sub.id, "a") is True
    with pytest.raises(QuotaExhausted):
        quota_service.decrement(db, sub.id, "b")

    assert _remaining(db, sub.id) == 0
    assert db.query(QuotaDebit).count() == 1


# ✅ ACTIVATION

def test_activate_sets_quota_and_period(db, test_user):
    sub = make_subscription(db, test_user.id, remaining=0, status=SubscriptionStatus.PENDING, plan_name="Elite")

    activated = quota_service.activate(db, sub.id, 20, payment_id="pay_1")

    assert activated.status == SubscriptionStatus.ACTIVE
    assert activated.resumes_remaining == 20
    assert activated.gateway_payment_id == "pay_1"
    assert (activated.end_date - activated.start_date).days == 30
    assert quota_service.get_active_subscription(db, test_user.id).id == sub.id


def test_activate_cancels_previous_active_subscription(db, test_user, active_subscription):
    new = make_subscription(db, test_user.id, remaining=0, status=SubscriptionStatus.PENDING, plan_name="Pro")

    quota_service.activate(db, new.id, 30)

    db.expire_all()
    old = db.query(Subscription).filter(Subscription.id == active_subscription.id).one()
    assert old.status == SubscriptionStatus.CANCELLED
    assert quota_service.get_active_subscription(db, test_user.id).id == new.id


def test_activate_rejects_negative_quota(db, test_user, active_subscription):
    with pytest.raises(ValueError):
        quota_service.activate(db, active_subscription.id, -1)


def test_activate_twice_keeps_first_activation(db, test_user):
    sub = make_subscription(db, test_user.id, remaining=0, status=SubscriptionStatus.PENDING)
    quota_service.activate(db, sub.id, 10)
    quota_service.check_and_reserve(db, test_user.id)

    again = quota_service.activate(db, sub.id, 10)

    assert again.resumes_remaining == 9
    assert again.activation_count == 1


def test_activate_cancelled_subscription_conflicts(db, test_user):
    sub = make_subscription(db, test_user.id, remaining=0, status=SubscriptionStatus.CANCELLED)
    with pytest.raises(SubscriptionConflict):
        quota_service.activate(db, sub.id, 10)
    assert _remaining(db, sub.id) == 0


def test_set_status_rejects_unknown_status(db, active_subscription):
    with pytest.raises(ValueError):
        quota_service.set_status(db, active_subscription, "paused")


# ✅ SUMMARY

def test_ledger_summary_without_subscription(db, test_user):
    summary = quota_service.get_ledger_summary(db, test_user.id)
    assert summary["active"] is False
    assert summary["resumes_remaining"] == 0
    assert summary["subscription_id"] is None


def test_ledger_summary_active(db, test_user, active_subscription):
    summary = quota_service.get_ledger_summary(db, test_user.id)
    assert summary["active"] is True
    assert summary["plan_name"] == "Starter"
    assert summary["resumes_remaining"] == 10


def test_ledger_summary_falls_back_to_latest_inactive(db, test_user):
    sub = make_subscription(db, test_user.id, status=SubscriptionStatus.CANCELLED, remaining=3)
    summary = quota_service.get_ledger_summary(db, test_user.id)
    assert summary["active"] is False
    assert summary["subscription_id"] == sub.id
    assert summary["status"] == SubscriptionStatus.CANCELLED


# ✅ CONCURRENCY (file-backed SQLite, one session per thread)

@pytest.fixture
def threaded_sessions(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    SessionFactory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield SessionFactory
    engine.dispose()


@pytest.mark.parametrize("remaining,attempts", [(1, 8), (3, 10)])
def test_concurrent_reservations_never_oversell(threaded_sessions, remaining, attempts):
    setup = threaded_sessions()
    user = User(full_name="Racer", email="racer@example.com", password_hash="x")
    setup.add(user)
    setup.commit()
    sub = make_subscription(setup, user.id, remaining=remaining)
    user_id, sub_id = user.id, sub.id
    setup.close()

    def attempt(_):
        db = threaded_sessions()
        try:
            quota_service.check_and_reserve(db, user_id)
            return True
        except QuotaExhausted:
            return False
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=attempts) as pool:
        results = list(pool.map(attempt, range(attempts)))

    assert results.count(True) == remaining

    check = threaded_sessions()
    try:
        assert check.query(Subscription).filter(Subscription.id == sub_id).one().resumes_remaining == 0
    finally:
        check.close()


def test_concurrent_decrements_with_same_key_apply_once(threaded_sessions):
    setup = threaded_sessions()
    user = User(full_name="Retrier", email="retry@example.com", password_hash="x")
    setup.add(user)
    setup.commit()
    sub_id = make_subscription(setup, user.id, remaining=5).id
    setup.close()

    def attempt(_):
        db = threaded_sessions()
        try:
            return quota_service.decrement(db, sub_id, "generation:42")
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=6) as pool:
        results = list(pool.map(attempt, range(6)))

    assert results.count(True) == 1

    check = threaded_sessions()
    try:
        assert check.query(Subscription).filter(Subscription.id == sub_id).one().resumes_remaining == 4
        assert check.query(QuotaDebit).count() == 1
    finally:
        check.close()
