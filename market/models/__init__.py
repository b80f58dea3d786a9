from market.models.base import Base  # noqa: F401

from market.models.user import User  # noqa: F401
from market.models.api_key import ApiKey  # noqa: F401
from market.models.shop import Shop  # noqa: F401
from market.models.shop_member import ShopMember  # noqa: F401
from market.models.listing import Listing  # noqa: F401
from market.models.ledger import Balance, LedgerEntry  # noqa: F401
from market.models.purchase import Purchase  # noqa: F401
from market.models.deposit import DepositRequest  # noqa: F401
from market.models.notification import Notification  # noqa: F401
from market.models.audit_log import AuditLog  # noqa: F401
from market.models.idempotency import IdempotencyKey  # noqa: F401
