from collaborator.model.order import (
    OPEN_STATUSES,
    TRANSIT_STATUSES,
    InventoryItem,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    Supplier,
    SupplierAck,
    TrackingStatus,
)
from collaborator.model.notification import (
    BatchStats,
    Channel,
    DeliveryReceipt,
    Notification,
)

__all__ = [
    "OPEN_STATUSES",
    "TRANSIT_STATUSES",
    "InventoryItem",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Product",
    "Supplier",
    "SupplierAck",
    "TrackingStatus",
    "BatchStats",
    "Channel",
    "DeliveryReceipt",
    "Notification",
]
