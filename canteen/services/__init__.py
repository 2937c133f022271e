"""
                        Services Module

Contains all business logic services with the hybrid architecture pattern.
Collaborators have Mock (development) and Real (production) implementations.

Services:
    - order_service: placing orders and moving them through their lifecycle
    - order_store: the only writer of order rows
    - order_numbers: durable human-readable order numbers
    - status_machine: legal status edges
    - tracking: public order lookup
    - realtime: WebSocket fan-out, optionally over Redis
    - menu / auth: external collaborators
"""

from canteen.services.order_service import OrderLine, OrderService
from canteen.services.order_store import OrderStore
from canteen.services.status_machine import StatusMachine
from canteen.services.tracking import TrackingResolver

__all__ = ["OrderLine", "OrderService", "OrderStore", "StatusMachine", "TrackingResolver"]
