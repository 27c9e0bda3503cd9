from .auth import User, SessionToken
from .catalog import Category, Product, ProductVariant, Shop, ShopProduct
from .cart import Cart, CartItem
from .zones import DeliveryZone
from .orders import Order, OrderItem, OrderStatus, PaymentStatus, DeliveryType
from .addresses import Address, ADDRESS_LABELS
from .settings import Setting

__all__ = [
    'User', 'SessionToken',
    'Category', 'Product', 'ProductVariant', 'Shop', 'ShopProduct',
    'Cart', 'CartItem',
    'DeliveryZone',
    'Order', 'OrderItem', 'OrderStatus', 'PaymentStatus', 'DeliveryType',
    'Address', 'ADDRESS_LABELS',
    'Setting',
]
