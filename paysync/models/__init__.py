"""SQLAlchemy models for PaySync.

All models are imported here so that ``Base.metadata`` knows every table.
If you add a new model, import it in this file.
"""

from paysync.models.customer import Customer
from paysync.models.price import Price
from paysync.models.product import Product
from paysync.models.subscription import Subscription
from paysync.models.user import User

__all__ = [
    "Customer",
    "Price",
    "Product",
    "Subscription",
    "User",
]
