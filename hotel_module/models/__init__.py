# Ontology Models
from hotel_module.models.ontology import (
    HotelSetting, Room, Customer, Agent, Booking, BookingCounter,
    HousekeepingTask, InventoryItem, ExtraService, BookingExtra
)

__all__ = [
    'HotelSetting', 'Room', 'Customer', 'Agent', 'Booking', 'BookingCounter',
    'HousekeepingTask', 'InventoryItem', 'ExtraService', 'BookingExtra'
]
