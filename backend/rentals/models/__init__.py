from .tenancy import Plan, Organization
from .auth import User, SessionToken
from .customers import Customer
from .equipment import Equipment, StockMovement, EquipmentCost
from .bookings import Booking, BookingItem
from .documents import DocumentSequence, ActivityLog

__all__ = [
    'Plan', 'Organization',
    'User', 'SessionToken',
    'Customer',
    'Equipment', 'StockMovement', 'EquipmentCost',
    'Booking', 'BookingItem',
    'DocumentSequence', 'ActivityLog',
]
