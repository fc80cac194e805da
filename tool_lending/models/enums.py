from enum import Enum


class ToolStatus(str, Enum):
    AVAILABLE = "available"
    RENTED = "rented"
    MAINTENANCE = "maintenance"
    UNAVAILABLE = "unavailable"


class MaintenanceImportance(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RentalStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    LATE = "late"
    REJECTED = "rejected"


class TransactionType(str, Enum):
    RENTAL = "Rental"
    MEMBERSHIP_FEE = "MembershipFee"
    REPAIR_COST = "RepairCost"
    PAYMENT = "Payment"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class PaymentMethod(str, Enum):
    CARD = "card"
    CHECK = "check"
    CASH = "cash"


class UserRole(str, Enum):
    MEMBER = "member"
    STAFF = "staff"
    ADMIN = "admin"


class UserStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    ARCHIVED = "archived"


class MaintenanceState(str, Enum):
    IN_SERVICE = "in_service"
    EXPIRED = "expired"
    DUE_SOON = "due_soon"
    COMPLIANT = "compliant"


class MembershipBucket(str, Enum):
    ACTIVE = "active"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"
