from .auth import Profile
from .catalog import Product, ProductVariant, RestockSubscription
from .orders import Order, OrderItem

__all__ = [
    'Profile',
    'Product', 'ProductVariant', 'RestockSubscription',
    'Order', 'OrderItem',
]
