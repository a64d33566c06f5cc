from .user import User
from .billing_customer import BillingCustomer
from .subscription import Subscription
from .order import Order
from .billing_event import BillingEventLog
from .collection import AudioFile, Collection, CollectionTrack

__all__ = [
    "User",
    "BillingCustomer",
    "Subscription",
    "Order",
    "BillingEventLog",
    "AudioFile",
    "Collection",
    "CollectionTrack",
]
