from .catalog import Product, Stock, StockMovement, DeliveryZone, DiscountCode
from .orders import Order, OrderItem, DocumentSequence
from .delivery import DeliveryTracking
from .notifications import Notification
from .auth import StaffUser, Customer, Address, StaffSession, CustomerSession

__all__ = [
    'Product', 'Stock', 'StockMovement', 'DeliveryZone', 'DiscountCode',
    'Order', 'OrderItem', 'DocumentSequence',
    'DeliveryTracking',
    'Notification',
    'StaffUser', 'Customer', 'Address', 'StaffSession', 'CustomerSession',
]
