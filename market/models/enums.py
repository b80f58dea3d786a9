import enum


class Category(str, enum.Enum):
    vehicle = "vehicle"
    real_estate = "real_estate"
    item = "item"
    service = "service"


class ListingStatus(str, enum.Enum):
    active = "active"
    passive = "passive"
    out_of_stock = "out_of_stock"
    # terminal, set only by purchase settlement
    sold = "sold"


class PlatformRole(str, enum.Enum):
    user = "user"
    moderator = "moderator"
    admin = "admin"
    super_admin = "super_admin"


ELEVATED_ROLES = frozenset({PlatformRole.moderator, PlatformRole.admin, PlatformRole.super_admin})


class ShopRole(str, enum.Enum):
    owner = "owner"
    editor = "editor"


class AccountType(str, enum.Enum):
    user = "user"
    shop = "shop"


class EntryType(str, enum.Enum):
    purchase = "purchase"
    sale = "sale"
    boost = "boost"
    listing_fee = "listing_fee"
    deposit = "deposit"
    bonus = "bonus"
    withdrawal = "withdrawal"


class DepositStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"


class DeliveryStatus(str, enum.Enum):
    # inbox only, no push target configured at creation time
    stored = "stored"
    pending = "pending"
    processing = "processing"
    sent = "sent"
    failed = "failed"
