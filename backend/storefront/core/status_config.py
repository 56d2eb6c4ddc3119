"""Status Configuration and Transition Rules

This module defines valid status values for orders and payments and the
allowed order transitions per trigger role. Status transitions are validated
to prevent invalid state changes.
"""
from enum import Enum
from typing import Dict, List, Set, Tuple


# =============================================================================
# Order Status
# =============================================================================

class OrderStatus(str, Enum):
    """Valid status values for Orders"""
    NEW_ORDER = "new_order"
    PROCESSING = "processing"
    CONFIRMED = "confirmed"
    PAID = "paid"
    SHIPPED = "shipped"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RETURNED = "returned"


# Canonical forward pipeline; position defines "before paid" etc.
ORDER_PIPELINE: List[OrderStatus] = [
    OrderStatus.NEW_ORDER,
    OrderStatus.PROCESSING,
    OrderStatus.CONFIRMED,
    OrderStatus.PAID,
    OrderStatus.SHIPPED,
    OrderStatus.COMPLETED,
]

TERMINAL_ORDER_STATUSES: Set[OrderStatus] = {
    OrderStatus.COMPLETED,
    OrderStatus.CANCELLED,
    OrderStatus.RETURNED,
}

# Item editing and client cancellation are allowed only here
EDITABLE_ORDER_STATUSES: Set[OrderStatus] = {
    OrderStatus.NEW_ORDER,
    OrderStatus.PROCESSING,
}

# Cancelling or returning puts the reserved stock back
STOCK_RESTORING_STATUSES: Set[OrderStatus] = {
    OrderStatus.CANCELLED,
    OrderStatus.RETURNED,
}


class TriggerRole(str, Enum):
    """Who is asking for a transition"""
    ADMIN = "admin"      # admin or manager
    CLIENT = "client"    # order owner
    CRON = "cron"        # scheduled janitors
    SYSTEM = "system"    # payment reconciliation


class ChangeSource(str, Enum):
    """Tag stored on every OrderStatusHistory row"""
    ADMIN = "admin"
    CLIENT_ACTION = "client_action"
    CRON = "cron"
    SYSTEM = "system"


ROLE_CHANGE_SOURCE: Dict[TriggerRole, ChangeSource] = {
    TriggerRole.ADMIN: ChangeSource.ADMIN,
    TriggerRole.CLIENT: ChangeSource.CLIENT_ACTION,
    TriggerRole.CRON: ChangeSource.CRON,
    TriggerRole.SYSTEM: ChangeSource.SYSTEM,
}


def _admin_transitions() -> Dict[OrderStatus, Set[OrderStatus]]:
    table: Dict[OrderStatus, Set[OrderStatus]] = {s: set() for s in OrderStatus}
    for index, status in enumerate(ORDER_PIPELINE):
        table[status].update(ORDER_PIPELINE[index + 1:])
        if status not in TERMINAL_ORDER_STATUSES:
            table[status].add(OrderStatus.CANCELLED)
    table[OrderStatus.SHIPPED].add(OrderStatus.RETURNED)
    table[OrderStatus.COMPLETED].add(OrderStatus.RETURNED)
    return table


# Allowed transitions: (current_status, role) -> set of allowed next statuses
ORDER_TRANSITIONS: Dict[Tuple[OrderStatus, TriggerRole], Set[OrderStatus]] = {}

for _status, _allowed in _admin_transitions().items():
    ORDER_TRANSITIONS[(_status, TriggerRole.ADMIN)] = _allowed

for _status in OrderStatus:
    ORDER_TRANSITIONS[(_status, TriggerRole.CLIENT)] = (
        {OrderStatus.CANCELLED} if _status in EDITABLE_ORDER_STATUSES else set()
    )
    ORDER_TRANSITIONS[(_status, TriggerRole.CRON)] = set()
    ORDER_TRANSITIONS[(_status, TriggerRole.SYSTEM)] = set()

ORDER_TRANSITIONS[(OrderStatus.NEW_ORDER, TriggerRole.CRON)] = {OrderStatus.CANCELLED}
ORDER_TRANSITIONS[(OrderStatus.SHIPPED, TriggerRole.CRON)] = {OrderStatus.COMPLETED}

for _status in (OrderStatus.NEW_ORDER, OrderStatus.PROCESSING, OrderStatus.CONFIRMED):
    ORDER_TRANSITIONS[(_status, TriggerRole.SYSTEM)] = {OrderStatus.PAID}


def get_allowed_order_transitions(current_status: str, role: str) -> List[str]:
    """Get list of allowed next statuses for an order and trigger role"""
    allowed = ORDER_TRANSITIONS.get((OrderStatus(current_status), TriggerRole(role)), set())
    return sorted(s.value for s in allowed)


def is_valid_order_transition(current_status: str, new_status: str, role: str) -> bool:
    """Check if an order status transition is valid for the given role"""
    return new_status in get_allowed_order_transitions(current_status, role)


def is_known_order_transition(current_status: str, new_status: str) -> bool:
    """True if any role may perform this transition."""
    return any(
        is_valid_order_transition(current_status, new_status, role.value)
        for role in TriggerRole
    )


def is_before_paid(status: str) -> bool:
    """True for pipeline statuses that precede ``paid``."""
    status = OrderStatus(status)
    if status not in ORDER_PIPELINE:
        return False
    return ORDER_PIPELINE.index(status) < ORDER_PIPELINE.index(OrderStatus.PAID)


# =============================================================================
# Payment Status
# =============================================================================

class PaymentStatus(str, Enum):
    """Reconciliation status of a provider Payment record"""
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILURE = "failure"


class OrderPaymentStatus(str, Enum):
    """Payment status as seen on the Order"""
    PENDING = "pending"
    PAID = "paid"
    PARTIAL = "partial"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    COD = "cod"
    BANK_TRANSFER = "bank_transfer"
    ONLINE = "online"
    CARD_PREPAY = "card_prepay"


ONLINE_PAYMENT_METHODS: Set[str] = {PaymentMethod.ONLINE.value, PaymentMethod.CARD_PREPAY.value}


class PaymentProvider(str, Enum):
    LIQPAY = "liqpay"
    MONOBANK = "monobank"


# =============================================================================
# Delivery / Client / Notifications
# =============================================================================

class DeliveryMethod(str, Enum):
    NOVA_POSHTA = "nova_poshta"
    UKRPOSHTA = "ukrposhta"
    PICKUP = "pickup"
    PALLET = "pallet"


class ClientType(str, Enum):
    RETAIL = "retail"
    WHOLESALE = "wholesale"


class UserRole(str, Enum):
    CLIENT = "client"
    WHOLESALE = "wholesale"
    MANAGER = "manager"
    ADMIN = "admin"


STAFF_ROLES: Set[str] = {UserRole.MANAGER.value, UserRole.ADMIN.value}


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class NotificationChannel(str, Enum):
    TELEGRAM = "telegram"
    EMAIL = "email"


# Carrier status codes that mean the parcel reached the recipient
NOVA_POSHTA_DELIVERED_CODES: Set[str] = {"9", "11"}


# Human-readable labels used in notifications
ORDER_STATUS_LABELS: Dict[str, str] = {
    OrderStatus.NEW_ORDER: "Нове",
    OrderStatus.PROCESSING: "В обробці",
    OrderStatus.CONFIRMED: "Підтверджено",
    OrderStatus.PAID: "Оплачено",
    OrderStatus.SHIPPED: "Відправлено",
    OrderStatus.COMPLETED: "Виконано",
    OrderStatus.CANCELLED: "Скасовано",
    OrderStatus.RETURNED: "Повернено",
}
