"""Shared fixtures: users, an admin, an active ad and a helper to fund wallets.

Wallets are only ever funded through core.ledger.create_entry, the same path
production code uses, so every fixture leaves the books balanced.
"""

from decimal import Decimal

import pytest
from django.db import connection, transaction

from core import ledger
from core.models import Ad, AdStatus, ReferenceType, Role, TransactionType, User


@pytest.fixture
def user(db):
    return User.objects.create(email="user@example.com")


@pytest.fixture
def other_user(db):
    return User.objects.create(email="other@example.com")


@pytest.fixture
def admin(db):
    return User.objects.create(email="admin@example.com", role=Role.ADMIN)


@pytest.fixture
def ad(db):
    return Ad.objects.create(
        title="Watch the trailer",
        advertiser="Acme",
        target_url="https://example.com/offer",
        payout_per_view=Decimal("2.50"),
        status=AdStatus.ACTIVE,
    )


@pytest.fixture
def fund(admin):
    """Credit a user through the ledger with a bonus entry."""

    def _fund(user, amount):
        entry = ledger.create_entry(
            user.pk, TransactionType.BONUS, amount, ReferenceType.ADMIN_ACTION, admin.pk, {"reason": "test funding"}
        )
        user.refresh_from_db()
        return entry

    return _fund


@pytest.fixture
def funded_user(user, fund):
    fund(user, "100.00")
    return user


def db_id(model, pk):
    """Primary key in the representation the current backend stores."""
    return model._meta.pk.get_db_prep_value(pk, connection)


def raw_sql(sql, params=None):
    """Run SQL outside the ORM inside a savepoint, so a rejected statement leaves the test transaction usable."""
    with transaction.atomic():
        with connection.cursor() as cursor:
            cursor.execute(sql, params)


def tamper_balance(user, value):
    raw_sql("UPDATE users SET balance = %s WHERE id = %s", [str(value), db_id(User, user.pk)])
