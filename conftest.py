import pytest


@pytest.fixture
def factories():
    from apps.bookings.tests import factories as module

    return module


@pytest.fixture
def guest(db, factories):
    return factories.make_guest()


@pytest.fixture
def realtor(db, factories):
    return factories.make_realtor()


@pytest.fixture
def platform_admin(db, factories):
    return factories.make_admin()


@pytest.fixture
def listing(realtor, factories):
    return factories.make_property(realtor)


@pytest.fixture
def booking(guest, listing, factories):
    """Unpaid booking starting tomorrow."""
    return factories.make_booking(guest, listing, days_ahead=1)


@pytest.fixture
def paid_booking(booking, factories):
    factories.pay_booking(booking)
    return booking


@pytest.fixture
def api_client():
    from rest_framework.test import APIClient

    return APIClient()
