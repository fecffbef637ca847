"""
Tests for SubscriptionReconciler.

Covers the three lifecycle events, user resolution, idempotent replay and
the out-of-order guard.
"""

from datetime import datetime, timezone as dt_timezone
from unittest.mock import patch

import pytest

from billing.exceptions import StripeAPIUnavailableError, UnknownCustomerError
from billing.models import CustomerLink, SubscriptionRecord
from billing.services import SubscriptionReconciler
from billing.tests.factories import (
    BASE_TIMESTAMP,
    SubscriptionRecordFactory,
    checkout_completed_event,
    subscription_event,
    subscription_object,
)
from billing.types import CheckoutSessionSnapshot, InboundEvent, SubscriptionSnapshot

RETRIEVE_SUBSCRIPTION = (
    "billing.services.subscription_reconciler.StripeAdapter.retrieve_subscription"
)


def as_event(payload):
    return InboundEvent.from_payload(payload)


def snapshot(**kwargs):
    return SubscriptionSnapshot.from_stripe(subscription_object(**kwargs))


@pytest.mark.django_db
class TestCheckoutCompleted:
    def test_activates_plan_for_metadata_user(self, user):
        event = as_event(
            checkout_completed_event(metadata={"user_id": str(user.pk)})
        )

        with patch(RETRIEVE_SUBSCRIPTION, return_value=snapshot(interval="year")) as mock:
            result = SubscriptionReconciler.reconcile_checkout_completed(event)

        assert result.success
        mock.assert_called_once_with("sub_test_1")
        record = SubscriptionRecord.objects.get(user=user)
        assert record.plan_type == "yearly"
        assert record.status == "active"
        assert record.external_subscription_id == "sub_test_1"
        assert record.external_customer_id == "cus_test_1"
        assert record.current_period_end == datetime.fromtimestamp(
            BASE_TIMESTAMP + 30 * 86400, tz=dt_timezone.utc
        )
        assert record.last_event_at == event.created_at
        assert record.has_premium_access
        assert CustomerLink.objects.get(user=user).external_customer_id == "cus_test_1"

    def test_metadata_plan_overrides_interval(self, user):
        event = as_event(
            checkout_completed_event(
                metadata={"user_id": str(user.pk), "plan": "monthly"}
            )
        )

        with patch(RETRIEVE_SUBSCRIPTION, return_value=snapshot(interval="year")):
            SubscriptionReconciler.reconcile_checkout_completed(event)

        assert SubscriptionRecord.objects.get(user=user).plan_type == "monthly"

    def test_falls_back_to_customer_email(self, user):
        event = as_event(
            checkout_completed_event(customer_email=user.email.upper())
        )

        with patch(RETRIEVE_SUBSCRIPTION, return_value=snapshot()):
            result = SubscriptionReconciler.reconcile_checkout_completed(event)

        assert result.success
        assert SubscriptionRecord.objects.filter(user=user).exists()

    def test_invalid_user_id_falls_back_to_email(self, user):
        event = as_event(
            checkout_completed_event(
                metadata={"user_id": "not-a-number"},
                customer_email=user.email,
            )
        )

        with patch(RETRIEVE_SUBSCRIPTION, return_value=snapshot()):
            SubscriptionReconciler.reconcile_checkout_completed(event)

        assert SubscriptionRecord.objects.filter(user=user).exists()

    def test_no_identity_is_invalid_payload(self, db):
        event = as_event(checkout_completed_event())

        with patch(RETRIEVE_SUBSCRIPTION) as mock:
            result = SubscriptionReconciler.reconcile_checkout_completed(event)

        assert not result.success
        assert result.error_code == "INVALID_WEBHOOK_PAYLOAD"
        mock.assert_not_called()

    def test_unknown_user_raises(self, db):
        event = as_event(
            checkout_completed_event(
                metadata={"user_id": "999999"},
                customer_email="stranger@example.com",
            )
        )

        with pytest.raises(UnknownCustomerError):
            SubscriptionReconciler.reconcile_checkout_completed(event)

        assert not SubscriptionRecord.objects.exists()

    def test_subscription_fetch_failure_propagates(self, user):
        event = as_event(checkout_completed_event(metadata={"user_id": str(user.pk)}))

        with patch(
            RETRIEVE_SUBSCRIPTION,
            side_effect=StripeAPIUnavailableError("timeout"),
        ):
            with pytest.raises(StripeAPIUnavailableError):
                SubscriptionReconciler.reconcile_checkout_completed(event)

        assert not SubscriptionRecord.objects.filter(user=user).exists()

    def test_session_without_subscription_uses_payment_status(self, user):
        event = as_event(
            checkout_completed_event(
                subscription=None,
                metadata={"user_id": str(user.pk), "plan": "yearly"},
            )
        )

        with patch(RETRIEVE_SUBSCRIPTION) as mock:
            SubscriptionReconciler.reconcile_checkout_completed(event)

        mock.assert_not_called()
        record = SubscriptionRecord.objects.get(user=user)
        assert record.plan_type == "yearly"
        assert record.status == "active"
        assert record.external_subscription_id is None

    def test_replay_is_idempotent(self, user):
        payload = checkout_completed_event(metadata={"user_id": str(user.pk)})

        with patch(RETRIEVE_SUBSCRIPTION, return_value=snapshot()):
            SubscriptionReconciler.reconcile_checkout_completed(as_event(payload))
            first = SubscriptionRecord.objects.values().get(user=user)
            SubscriptionReconciler.reconcile_checkout_completed(as_event(payload))
            second = SubscriptionRecord.objects.values().get(user=user)

        first.pop("updated_at")
        second.pop("updated_at")
        assert first == second
        assert SubscriptionRecord.objects.count() == 1
        assert CustomerLink.objects.count() == 1


@pytest.mark.django_db
class TestSubscriptionUpdated:
    def test_overwrites_record(self, user, active_subscription):
        event = as_event(
            subscription_event(
                "customer.subscription.updated",
                status="past_due",
                interval="year",
                cancel_at_period_end=True,
            )
        )

        result = SubscriptionReconciler.reconcile_subscription_updated(event)

        assert result.data["applied"] is True
        active_subscription.refresh_from_db()
        assert active_subscription.status == "past_due"
        assert active_subscription.plan_type == "yearly"
        assert active_subscription.cancel_at_period_end is True
        assert active_subscription.state == "past_due"
        assert not active_subscription.has_premium_access

    def test_creates_record_when_missing(self, user, customer_link):
        event = as_event(subscription_event("customer.subscription.updated"))

        SubscriptionReconciler.reconcile_subscription_updated(event)

        record = SubscriptionRecord.objects.get(user=user)
        assert record.plan_type == "monthly"
        assert record.external_subscription_id == "sub_test_1"

    def test_metadata_override_is_honoured(self, user, customer_link):
        event = as_event(
            subscription_event(
                "customer.subscription.updated",
                interval="month",
                metadata={"plan": "yearly"},
            )
        )

        SubscriptionReconciler.reconcile_subscription_updated(event)

        assert SubscriptionRecord.objects.get(user=user).plan_type == "yearly"

    def test_unknown_customer_raises(self, db):
        event = as_event(
            subscription_event("customer.subscription.updated", customer="cus_ghost")
        )

        with pytest.raises(UnknownCustomerError):
            SubscriptionReconciler.reconcile_subscription_updated(event)

        assert not SubscriptionRecord.objects.exists()

    def test_customer_email_is_not_used_for_lookup(self, user):
        """Only the customer link identifies the user of a subscription event."""
        event = as_event(
            subscription_event("customer.subscription.updated", customer="cus_unlinked")
        )

        with pytest.raises(UnknownCustomerError):
            SubscriptionReconciler.reconcile_subscription_updated(event)

    def test_missing_customer_is_invalid_payload(self, db):
        payload = subscription_event("customer.subscription.updated")
        payload["data"]["object"]["customer"] = None

        result = SubscriptionReconciler.reconcile_subscription_updated(as_event(payload))

        assert result.error_code == "INVALID_WEBHOOK_PAYLOAD"

    def test_stale_event_is_discarded(self, user, customer_link):
        newer = as_event(
            subscription_event(
                "customer.subscription.updated",
                event_id="evt_new",
                created=BASE_TIMESTAMP + 60,
                status="active",
            )
        )
        older = as_event(
            subscription_event(
                "customer.subscription.updated",
                event_id="evt_old",
                created=BASE_TIMESTAMP,
                status="past_due",
            )
        )

        SubscriptionReconciler.reconcile_subscription_updated(newer)
        result = SubscriptionReconciler.reconcile_subscription_updated(older)

        assert result.success
        assert result.data == {"applied": False, "reason": "stale", "user_id": user.pk}
        record = SubscriptionRecord.objects.get(user=user)
        assert record.status == "active"
        assert record.last_event_at == newer.created_at


@pytest.mark.django_db
class TestSubscriptionDeleted:
    @pytest.mark.parametrize("plan_type", ["monthly", "yearly"])
    def test_resets_to_free_canceled(self, user, customer_link, plan_type):
        SubscriptionRecordFactory(
            user=user,
            external_customer_id="cus_test_1",
            external_subscription_id="sub_test_1",
            plan_type=plan_type,
            cancel_at_period_end=True,
        )
        event = as_event(subscription_event("customer.subscription.deleted"))

        SubscriptionReconciler.reconcile_subscription_deleted(event)

        record = SubscriptionRecord.objects.get(user=user)
        assert record.plan_type == "free"
        assert record.status == "canceled"
        assert record.external_subscription_id is None
        assert record.current_period_start is None
        assert record.current_period_end is None
        assert record.cancel_at_period_end is False
        assert record.state == "canceled"

    def test_unknown_customer_writes_nothing(self, db):
        event = as_event(
            subscription_event("customer.subscription.deleted", customer="cus_1")
        )

        with pytest.raises(UnknownCustomerError) as exc_info:
            SubscriptionReconciler.reconcile_subscription_deleted(event)

        assert exc_info.value.http_status == 404
        assert not SubscriptionRecord.objects.exists()

    def test_superseded_subscription_is_ignored(self, user, customer_link):
        SubscriptionRecordFactory(
            user=user,
            external_customer_id="cus_test_1",
            external_subscription_id="sub_current",
        )
        event = as_event(
            subscription_event(
                "customer.subscription.deleted",
                subscription_id="sub_previous",
            )
        )

        result = SubscriptionReconciler.reconcile_subscription_deleted(event)

        assert result.data["applied"] is False
        record = SubscriptionRecord.objects.get(user=user)
        assert record.external_subscription_id == "sub_current"
        assert record.status == "active"


@pytest.mark.django_db
class TestSyncCheckoutSession:
    def test_applies_session_with_expanded_subscription(self, user):
        session = CheckoutSessionSnapshot.from_stripe(
            {
                "id": "cs_test_1",
                "customer": "cus_test_1",
                "payment_status": "paid",
                "subscription": subscription_object(interval="year"),
                "metadata": {"user_id": str(user.pk)},
                "created": BASE_TIMESTAMP,
            }
        )

        result = SubscriptionReconciler.sync_checkout_session(user, session)

        assert result.data["applied"] is True
        record = SubscriptionRecord.objects.get(user=user)
        assert record.plan_type == "yearly"
        assert record.last_event_at == session.created_at

    def test_later_webhook_state_is_not_overwritten(self, user, customer_link):
        SubscriptionReconciler.reconcile_subscription_updated(
            as_event(
                subscription_event(
                    "customer.subscription.updated",
                    created=BASE_TIMESTAMP + 3600,
                    status="past_due",
                )
            )
        )
        session = CheckoutSessionSnapshot.from_stripe(
            {
                "id": "cs_test_1",
                "customer": "cus_test_1",
                "payment_status": "paid",
                "subscription": subscription_object(status="active"),
                "created": BASE_TIMESTAMP,
            }
        )

        result = SubscriptionReconciler.sync_checkout_session(user, session)

        assert result.data["applied"] is False
        assert SubscriptionRecord.objects.get(user=user).status == "past_due"


def at(offset=0):
    return datetime.fromtimestamp(BASE_TIMESTAMP + offset, tz=dt_timezone.utc)


@pytest.mark.django_db
class TestPlanReplacement:
    """A new checkout and the deletion of the plan it replaced, in either order."""

    @pytest.fixture
    def old_plan(self, user, customer_link):
        return SubscriptionRecordFactory(
            user=user,
            external_customer_id="cus_test_1",
            external_subscription_id="sub_old",
            last_event_at=at(),
        )

    def deletion_of_old_plan(self):
        return as_event(
            subscription_event(
                "customer.subscription.deleted",
                event_id="evt_deleted_old",
                created=BASE_TIMESTAMP + 200,
                subscription_id="sub_old",
            )
        )

    def checkout_of_new_plan(self, user):
        return as_event(
            checkout_completed_event(
                created=BASE_TIMESTAMP + 100,
                subscription="sub_new",
                metadata={"user_id": str(user.pk)},
            )
        )

    def test_checkout_applies_after_later_stamped_deletion(self, user, old_plan):
        SubscriptionReconciler.reconcile_subscription_deleted(self.deletion_of_old_plan())
        assert SubscriptionRecord.objects.get(user=user).status == "canceled"

        with patch(
            RETRIEVE_SUBSCRIPTION,
            return_value=snapshot(subscription_id="sub_new", interval="year"),
        ):
            result = SubscriptionReconciler.reconcile_checkout_completed(
                self.checkout_of_new_plan(user)
            )

        assert result.data["applied"] is True
        record = SubscriptionRecord.objects.get(user=user)
        assert record.external_subscription_id == "sub_new"
        assert record.plan_type == "yearly"
        assert record.status == "active"
        assert record.has_premium_access
        assert record.last_event_at == at(200)

    def test_deletion_after_checkout_is_ignored(self, user, old_plan):
        with patch(
            RETRIEVE_SUBSCRIPTION,
            return_value=snapshot(subscription_id="sub_new"),
        ):
            SubscriptionReconciler.reconcile_checkout_completed(
                self.checkout_of_new_plan(user)
            )

        result = SubscriptionReconciler.reconcile_subscription_deleted(
            self.deletion_of_old_plan()
        )

        assert result.data["reason"] == "superseded"
        record = SubscriptionRecord.objects.get(user=user)
        assert record.external_subscription_id == "sub_new"
        assert record.status == "active"

    def test_checkout_committed_during_deletion_is_kept(self, user, old_plan):
        resolve_user = SubscriptionReconciler._user_for_customer

        def resolve_then_checkout(customer_id, event):
            resolved = resolve_user(customer_id, event)
            SubscriptionRecord.objects.filter(user=resolved).update(
                external_subscription_id="sub_new"
            )
            return resolved

        with patch.object(
            SubscriptionReconciler,
            "_user_for_customer",
            side_effect=resolve_then_checkout,
        ):
            result = SubscriptionReconciler.reconcile_subscription_deleted(
                self.deletion_of_old_plan()
            )

        assert result.data["applied"] is False
        record = SubscriptionRecord.objects.get(user=user)
        assert record.external_subscription_id == "sub_new"
        assert record.plan_type == "monthly"
        assert record.status == "active"

    def test_replayed_checkout_of_ended_plan_keeps_current_one(self, user, old_plan):
        event = as_event(
            checkout_completed_event(
                created=BASE_TIMESTAMP - 500,
                subscription="sub_ended",
                metadata={"user_id": str(user.pk)},
            )
        )

        with patch(
            RETRIEVE_SUBSCRIPTION,
            return_value=snapshot(subscription_id="sub_ended", status="canceled"),
        ):
            result = SubscriptionReconciler.reconcile_checkout_completed(event)

        assert result.data["reason"] == "superseded"
        record = SubscriptionRecord.objects.get(user=user)
        assert record.external_subscription_id == "sub_old"
        assert record.status == "active"
        assert record.last_event_at == at()
