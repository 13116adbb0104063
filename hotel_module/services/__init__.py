"""
服务层
每个服务按 (db, tenant_id) 构造，所有读写都限定在该租户内
"""
from hotel_module.services.event_bus import event_bus, Event, EventBus
from hotel_module.services.locks import room_locks, RoomLockRegistry
from hotel_module.services.settings_service import SettingsService
from hotel_module.services.room_service import RoomService
from hotel_module.services.customer_service import CustomerService
from hotel_module.services.agent_service import AgentService
from hotel_module.services.task_service import TaskService
from hotel_module.services.booking_service import BookingService
from hotel_module.services.inventory_service import InventoryService
from hotel_module.services.catalog_service import ServiceCatalogService
from hotel_module.services.report_service import ReportService

__all__ = [
    "event_bus", "Event", "EventBus",
    "room_locks", "RoomLockRegistry",
    "SettingsService", "RoomService", "CustomerService", "AgentService",
    "TaskService", "BookingService", "InventoryService", "ServiceCatalogService", "ReportService",
]
