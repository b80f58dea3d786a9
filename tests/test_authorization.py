import itertools
from dataclasses import dataclass
from decimal import Decimal

import pytest

from market.core.errors import ForbiddenReason
from market.services.auth import Actor
from market.services.authorization import can_edit, can_transfer, can_view, purchase_denial, resolve

OWNER = "usr_owner"
OTHER = "usr_other"
SHOP = "shp_1"


@dataclass
class L:
    owner_id: str = OWNER
    shop_id: str | None = None
    status: str = "active"
    category: str = "item"
    price: Decimal = Decimal("50.00")


ROLES = ["user", "moderator", "admin", "super_admin"]


@pytest.mark.parametrize(
    "is_owner,shop_id,membership,role",
    list(itertools.product([True, False], [None, SHOP], [None, "owner", "editor"], ROLES)),
)
def test_can_edit_truth_table(is_owner, shop_id, membership, role):
    actor = Actor(user_id=OWNER if is_owner else OTHER, role=role)
    listing = L(shop_id=shop_id)
    # membership only means something when the listing sits in that shop
    role_in_listing_shop = membership if shop_id else None

    expected = is_owner or (shop_id is not None and membership in ("owner", "editor")) or role != "user"
    assert can_edit(actor, listing, role_in_listing_shop) is expected


def test_can_view_by_status():
    stranger = Actor(user_id=OTHER, role="user")
    assert can_view(stranger, L(status="active"), None)
    assert can_view(stranger, L(status="out_of_stock"), None)
    assert not can_view(stranger, L(status="passive"), None)
    assert not can_view(stranger, L(status="sold"), None)

    assert can_view(Actor(user_id=OWNER, role="user"), L(status="passive"), None)
    assert can_view(Actor(user_id=OTHER, role="moderator"), L(status="passive"), None)
    assert can_view(stranger, L(status="passive", shop_id=SHOP), "editor")


def test_can_transfer_needs_destination_membership():
    owner = Actor(user_id=OWNER, role="user")
    assert can_transfer(owner, L(), None, "editor")
    assert can_transfer(owner, L(), None, "owner")
    assert not can_transfer(owner, L(), None, None)
    # elevated role does not stand in for membership on the destination
    assert not can_transfer(Actor(user_id=OTHER, role="admin"), L(), None, None)
    assert not can_transfer(Actor(user_id=OTHER, role="user"), L(), None, "owner")


@pytest.mark.parametrize(
    "actor_id,listing,membership,balance,expected",
    [
        (OWNER, L(), None, Decimal("100"), ForbiddenReason.SELF_PURCHASE),
        (OTHER, L(shop_id=SHOP), "editor", Decimal("100"), ForbiddenReason.SELF_PURCHASE),
        (OTHER, L(shop_id=SHOP), "owner", Decimal("100"), ForbiddenReason.SELF_PURCHASE),
        (OTHER, L(status="passive"), None, Decimal("100"), ForbiddenReason.NOT_ACTIVE),
        (OTHER, L(status="out_of_stock"), None, Decimal("100"), ForbiddenReason.NOT_ACTIVE),
        (OTHER, L(status="sold"), None, Decimal("100"), ForbiddenReason.NOT_ACTIVE),
        (OTHER, L(category="service"), None, Decimal("100"), ForbiddenReason.NOT_PURCHASABLE_CATEGORY),
        (OTHER, L(), None, Decimal("49.99"), ForbiddenReason.INSUFFICIENT_BALANCE),
        (OTHER, L(), None, Decimal("50.00"), None),
        (OTHER, L(shop_id=SHOP), None, Decimal("50.00"), None),
    ],
)
def test_purchase_denial(actor_id, listing, membership, balance, expected):
    actor = Actor(user_id=actor_id, role="user")
    assert purchase_denial(actor, listing, membership_role=membership, balance=balance) is expected


def test_self_purchase_wins_over_other_reasons():
    owner = Actor(user_id=OWNER, role="user")
    listing = L(status="passive", category="service")
    assert purchase_denial(owner, listing, membership_role=None, balance=Decimal("0")) is ForbiddenReason.SELF_PURCHASE


def test_resolve_bundles_every_decision():
    buyer = Actor(user_id=OTHER, role="user")
    p = resolve(buyer, L(), membership_role=None, balance=Decimal("80"), destination_role="owner")
    assert p.can_view and not p.can_edit and not p.can_transfer
    assert p.can_purchase and p.purchase_denial is None

    p = resolve(buyer, L(), membership_role=None, balance=Decimal("1"))
    assert not p.can_purchase
    assert p.purchase_denial is ForbiddenReason.INSUFFICIENT_BALANCE
