from __future__ import annotations

from django.core import mail
from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from apps.bookings.models import Booking
from apps.bookings.services import cancel_booking
from apps.bookings.tests.factories import make_booking, make_guest, make_property, make_realtor, pay_booking
from apps.finances.domain.events import RefundRequestDecided
from apps.notifications.models import Notification
from apps.notifications.services import create_in_app_notification, notify_admins, notify_user
from apps.users.events import RealtorStatusChanged
from shared.application.message_bus import MessageBus
from shared.application.uow import DjangoUnitOfWork


class EventHandlerTests(TestCase):
    def setUp(self) -> None:
        self.guest = make_guest()
        self.realtor = make_realtor()
        self.booking = make_booking(self.guest, make_property(self.realtor), days_ahead=5)

    def test_activation_notifies_guest_and_owner(self) -> None:
        with self.captureOnCommitCallbacks(execute=True):
            pay_booking(self.booking)

        guest_note = Notification.objects.get(user=self.guest)
        owner_note = Notification.objects.get(user=self.realtor)
        self.assertEqual(guest_note.type, Notification.Type.PAYMENT)
        self.assertIn(self.booking.booking_code, guest_note.title)
        self.assertEqual(owner_note.type, Notification.Type.BOOKING)
        self.assertEqual(sorted(message.to[0] for message in mail.outbox), sorted([self.guest.email, self.realtor.email]))

    def test_paid_cancellation_is_a_refund_notice(self) -> None:
        pay_booking(self.booking)

        with self.captureOnCommitCallbacks(execute=True):
            cancel_booking(self.booking, source=Booking.CancellationSource.GUEST)

        guest_note = Notification.objects.get(user=self.guest)
        self.assertEqual(guest_note.type, Notification.Type.REFUND)
        self.assertIn("23000.00", guest_note.message)

    def test_nothing_is_sent_when_the_transaction_rolls_back(self) -> None:
        class Boom(Exception):
            pass

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            with self.assertRaises(Boom):
                with DjangoUnitOfWork() as uow:
                    uow.add_event(RealtorStatusChanged(realtor_id=self.realtor.pk, status="approved"))
                    raise Boom()

        self.assertEqual(callbacks, [])
        self.assertFalse(Notification.objects.exists())

    def test_realtor_status_change_reaches_realtor(self) -> None:
        with self.captureOnCommitCallbacks(execute=True):
            with DjangoUnitOfWork() as uow:
                uow.add_event(
                    RealtorStatusChanged(realtor_id=self.realtor.pk, status="suspended", reason="Fake listings")
                )

        note = Notification.objects.get(user=self.realtor)
        self.assertEqual(note.type, Notification.Type.ACCOUNT)
        self.assertIn("Reason: Fake listings", note.message)

    def test_refund_request_rejection_reaches_guest(self) -> None:
        with self.captureOnCommitCallbacks(execute=True):
            with DjangoUnitOfWork() as uow:
                uow.add_event(
                    RefundRequestDecided(
                        refund_request_id=1,
                        booking_id=self.booking.pk,
                        guest_id=self.guest.pk,
                        approved=False,
                        reason="Stay matched the listing",
                    )
                )

        note = Notification.objects.get(user=self.guest)
        self.assertEqual(note.type, Notification.Type.REFUND)
        self.assertIn("Stay matched the listing", note.message)


class MessageBusTests(TestCase):
    def test_failing_handler_does_not_stop_others(self) -> None:
        bus = MessageBus()
        seen = []

        def broken(event):
            raise RuntimeError("handler crashed")

        def recorder(event):
            seen.append(event.realtor_id)

        bus.register_event_handler(RealtorStatusChanged, broken)
        bus.register_event_handler(RealtorStatusChanged, recorder)
        bus.register_event_handler(RealtorStatusChanged, recorder)

        bus.publish_events([RealtorStatusChanged(realtor_id=7, status="approved")])

        self.assertEqual(seen, [7])
        self.assertEqual(len(bus.handlers_for(RealtorStatusChanged)), 2)


class NotificationServiceTests(TestCase):
    def test_notify_user_uses_both_channels(self) -> None:
        user = make_guest()

        result = notify_user(
            user,
            notification_type=Notification.Type.SYSTEM,
            title="Welcome",
            message="Thanks for joining.",
        )

        self.assertEqual(result, {"email": True, "in_app": True})
        self.assertEqual(mail.outbox[0].subject, "Welcome")
        self.assertEqual(mail.outbox[0].body, "Thanks for joining.")

    @override_settings(ADMIN_ALERT_EMAILS=["ops@example.com", "finance@example.com"])
    def test_notify_admins(self) -> None:
        self.assertEqual(notify_admins("Payout stuck", "wd_1 failed three times"), 2)
        self.assertEqual(len(mail.outbox), 2)

    @override_settings(ADMIN_ALERT_EMAILS=[])
    def test_notify_admins_without_recipients(self) -> None:
        self.assertEqual(notify_admins("Payout stuck", "wd_1 failed three times"), 0)
        self.assertEqual(mail.outbox, [])


class NotificationAPITests(APITestCase):
    def setUp(self) -> None:
        self.user = make_guest()
        for title in ("First", "Second", "Third"):
            create_in_app_notification(self.user, title, f"{title} message")
        create_in_app_notification(make_guest(), "Not yours", "Someone else's")
        self.client.force_authenticate(self.user)

    def test_list_shows_own_notifications(self) -> None:
        response = self.client.get(reverse("notification-list"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row["title"] for row in response.data], ["Third", "Second", "First"])

    def test_mark_read_and_unread_count(self) -> None:
        notification = Notification.objects.filter(user=self.user).first()

        response = self.client.post(reverse("notification-mark-read", kwargs={"pk": notification.pk}))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["is_read"])

        response = self.client.get(reverse("notification-unread-count"))
        self.assertEqual(response.data, {"unread": 2})

    def test_mark_all_read(self) -> None:
        response = self.client.post(reverse("notification-mark-all-read"))
        self.assertEqual(response.data, {"updated": 3})

        response = self.client.get(reverse("notification-list"), {"is_read": "false"})
        self.assertEqual(response.data, [])

    def test_cannot_read_other_users_notification(self) -> None:
        other = Notification.objects.exclude(user=self.user).get()

        response = self.client.post(reverse("notification-mark-read", kwargs={"pk": other.pk}))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_requires_authentication(self) -> None:
        self.client.force_authenticate(None)

        response = self.client.get(reverse("notification-list"))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
