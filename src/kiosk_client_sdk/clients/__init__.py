from .commerce import CHECKOUT_PATH, ORDER_SYNC_PATH, PRODUCT_SYNC_PATH, CommerceClient
from .identity import IdentityClient

__all__ = [
    "CHECKOUT_PATH",
    "ORDER_SYNC_PATH",
    "PRODUCT_SYNC_PATH",
    "CommerceClient",
    "IdentityClient",
]
