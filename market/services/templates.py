from decimal import Decimal


def _money(amount: Decimal) -> str:
    return f"{Decimal(amount):.2f}"


def purchase_confirmed(listing_title: str, price: Decimal) -> tuple[str, str]:
    return "Purchase complete", f'You bought "{listing_title}" for {_money(price)}.'


def listing_sold(listing_title: str, price: Decimal) -> tuple[str, str]:
    return "Your listing sold", f'"{listing_title}" was sold for {_money(price)}. The amount was added to the balance.'


def listing_created(listing_title: str) -> tuple[str, str]:
    return "Your listing is live", f'"{listing_title}" was created and published.'


def listing_boosted(listing_title: str, option: str) -> tuple[str, str]:
    return "Listing boosted", f'"{listing_title}" is boosted for {option} and will rank ahead of other listings.'


def shop_created(shop_name: str) -> tuple[str, str]:
    return "Shop created", f'Your shop "{shop_name}" is ready. You can now list items under it.'


def shop_verified(shop_name: str) -> tuple[str, str]:
    return "Shop verified", f'"{shop_name}" was verified and received a verification badge.'


def member_added(shop_name: str) -> tuple[str, str]:
    return "Added to a shop", f'You were added to "{shop_name}" as an editor.'


def ownership_received(shop_name: str) -> tuple[str, str]:
    return "Shop ownership transferred", f'You are now the owner of "{shop_name}".'


def balance_added(amount: Decimal) -> tuple[str, str]:
    return "Balance added", f"{_money(amount)} was added to your balance."


def shop_withdrawal(shop_name: str, amount: Decimal) -> tuple[str, str]:
    return "Shop earnings paid out", f'{_money(amount)} from "{shop_name}" was moved to your balance.'
