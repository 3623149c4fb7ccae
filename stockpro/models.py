from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigIntPK = BigInteger().with_variant(Integer(), 'sqlite')

DEFAULT_CATEGORY = 'Non catégorisé'


class Base(DeclarativeBase):
    pass


class UserRole(str, Enum):
    ADMIN = 'Administrateur'
    MANAGER = 'Gestionnaire'
    USER = 'Utilisateur'


class UserStatus(str, Enum):
    ACTIVE = 'Actif'
    INACTIVE = 'Inactif'


class OperationStatus(str, Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'


class OperationType(str, Enum):
    RECEIPT = 'receipt'
    STOCKOUT = 'stockout'
    VEHICLE = 'vehicle'


class MovementType(str, Enum):
    STOCKOUT = 'stockout'
    ADJUSTMENT = 'adjustment'


class ExitType(str, Enum):
    DEFINITIVE = 'Définitive'
    ASSIGNMENT = 'Affectation'
    PROVISIONAL = 'Provisoire'


class MovementStatus(str, Enum):
    COMPLETED = 'Complétée'
    RETURNED = 'Retournée'


class VehicleType(str, Enum):
    MOTO = 'moto'
    CAR = 'voiture'
    AMBULANCE = 'ambulance'
    TRUCK = 'camion'
    OTHER = 'autres'


class VehicleStatus(str, Enum):
    PENDING = 'pending'
    ASSIGNED = 'assigned'
    REFORMED = 'reformed'


def _enum_column(enum_cls: type[Enum], name: str) -> SQLEnum:
    # Persist the enum values (not member names) as plain strings.
    return SQLEnum(
        enum_cls,
        name=name,
        native_enum=False,
        values_callable=lambda members: [member.value for member in members],
    )


class Category(Base):
    __tablename__ = 'categories'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class User(Base):
    __tablename__ = 'users'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[UserRole] = mapped_column(_enum_column(UserRole, 'user_role'), nullable=False, default=UserRole.USER, index=True)
    status: Mapped[UserStatus] = mapped_column(_enum_column(UserStatus, 'user_status'), nullable=False, default=UserStatus.ACTIVE)
    # NULL means "derived from role"; a list is an explicit administrator override.
    permissions: Mapped[list[str] | None] = mapped_column(JSON)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ApiToken(Base):
    __tablename__ = 'api_tokens'
    __table_args__ = (
        UniqueConstraint('token', name='api_tokens_token_key'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    token: Mapped[str] = mapped_column(String(128), nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class UserInvitation(Base):
    __tablename__ = 'user_invitations'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    role: Mapped[UserRole] = mapped_column(_enum_column(UserRole, 'invitation_role'), nullable=False)
    permissions: Mapped[list[str] | None] = mapped_column(JSON)
    token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    invited_by_user_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='SET NULL'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuthEvent(Base):
    __tablename__ = 'auth_events'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    attempted_email: Mapped[str] = mapped_column(String(255), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(String(64))
    user_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='SET NULL'))
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    actor_user_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='SET NULL'))
    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    ip: Mapped[str | None] = mapped_column(String(64))
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Product(Base):
    __tablename__ = 'products'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    ref: Mapped[str | None] = mapped_column(String(255), unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(255), nullable=False, default=DEFAULT_CATEGORY)
    category_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('categories.id', ondelete='SET NULL'), index=True)
    unit: Mapped[str | None] = mapped_column(String(64))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0'))
    critical_level: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    supplier: Mapped[str | None] = mapped_column(String(255))
    acquirer: Mapped[str | None] = mapped_column(String(255))
    beneficiary: Mapped[str | None] = mapped_column(String(255))
    acquired_at: Mapped[date | None] = mapped_column(Date)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Receipt(Base):
    __tablename__ = 'receipts'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    ref: Mapped[str | None] = mapped_column(String(255), unique=True)
    supplier: Mapped[str | None] = mapped_column(String(255))
    agent: Mapped[str] = mapped_column(String(255), nullable=False)
    acquirer: Mapped[str | None] = mapped_column(String(255))
    persons_present: Mapped[str | None] = mapped_column(Text)
    received_at: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    status: Mapped[OperationStatus] = mapped_column(
        _enum_column(OperationStatus, 'receipt_status'), nullable=False, default=OperationStatus.APPROVED
    )
    approved_by: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='SET NULL'))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_by: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='SET NULL'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)


class ReceiptItem(Base):
    __tablename__ = 'receipt_items'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    receipt_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('receipts.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('products.id', ondelete='CASCADE'), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0'))


class StockMovement(Base):
    __tablename__ = 'stock_movements'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    product_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True)
    type: Mapped[MovementType] = mapped_column(_enum_column(MovementType, 'movement_type'), nullable=False)
    exit_type: Mapped[ExitType | None] = mapped_column(_enum_column(ExitType, 'exit_type'))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    beneficiary: Mapped[str | None] = mapped_column(String(255))
    agent: Mapped[str | None] = mapped_column(String(255))
    notes: Mapped[str | None] = mapped_column(Text)
    movement_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[MovementStatus | None] = mapped_column(_enum_column(MovementStatus, 'movement_status'))
    inventory_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('inventories.id', ondelete='SET NULL'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)


class Inventory(Base):
    __tablename__ = 'inventories'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    agent: Mapped[str] = mapped_column(String(255), nullable=False)
    counted_at: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='SET NULL'), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)


class InventoryItem(Base):
    __tablename__ = 'inventory_items'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    inventory_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('inventories.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('products.id', ondelete='CASCADE'), nullable=False)
    theoretical_qty: Mapped[int] = mapped_column(Integer, nullable=False)
    counted_qty: Mapped[int] = mapped_column(Integer, nullable=False)
    variance: Mapped[int] = mapped_column(Integer, nullable=False)


class PendingOperation(Base):
    __tablename__ = 'pending_operations'
    __table_args__ = (
        Index('ix_pending_operations_status_type', 'status', 'type'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    # Kept as a free string: rows written by older releases may carry types
    # this build no longer executes.
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    data: Mapped[dict] = mapped_column(JSON, nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    status: Mapped[OperationStatus] = mapped_column(
        _enum_column(OperationStatus, 'pending_operation_status'), nullable=False, default=OperationStatus.PENDING
    )
    approved_by: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='SET NULL'))
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Need(Base):
    __tablename__ = 'needs'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    product_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('products.id', ondelete='CASCADE'), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    status: Mapped[OperationStatus] = mapped_column(
        _enum_column(OperationStatus, 'need_status'), nullable=False, default=OperationStatus.PENDING
    )
    approved_by: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='SET NULL'))
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Vehicle(Base):
    __tablename__ = 'vehicles'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    type: Mapped[VehicleType] = mapped_column(_enum_column(VehicleType, 'vehicle_type'), nullable=False)
    designation: Mapped[str] = mapped_column(String(255), nullable=False)
    chassis_number: Mapped[str] = mapped_column(String(255), nullable=False)
    plate_number: Mapped[str] = mapped_column(String(64), nullable=False)
    acquisition_date: Mapped[date] = mapped_column(Date, nullable=False)
    acquirer: Mapped[str] = mapped_column(String(255), nullable=False)
    reception_commission: Mapped[str | None] = mapped_column(String(255))
    observations: Mapped[str | None] = mapped_column(Text)
    status: Mapped[VehicleStatus] = mapped_column(
        _enum_column(VehicleStatus, 'vehicle_status'), nullable=False, default=VehicleStatus.PENDING
    )
    reformed_at: Mapped[date | None] = mapped_column(Date)
    reform_reason: Mapped[str | None] = mapped_column(String(64))
    reform_agent: Mapped[str | None] = mapped_column(String(255))
    reform_destination: Mapped[str | None] = mapped_column(String(64))
    reform_notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class VehicleAssignment(Base):
    __tablename__ = 'vehicle_assignments'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    vehicle_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('vehicles.id', ondelete='CASCADE'), nullable=False, index=True)
    region: Mapped[str] = mapped_column(String(64), nullable=False)
    recipient: Mapped[str] = mapped_column(String(255), nullable=False)
    structure: Mapped[str | None] = mapped_column(String(255))
    district: Mapped[str | None] = mapped_column(String(255))
    assigned_at: Mapped[date] = mapped_column(Date, nullable=False)
    # An assignment is active while unassigned_at is NULL.
    unassigned_at: Mapped[date | None] = mapped_column(Date)
    unassign_agent: Mapped[str | None] = mapped_column(String(255))
    unassign_reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Maintenance(Base):
    __tablename__ = 'maintenances'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    vehicle_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('vehicles.id', ondelete='CASCADE'), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(255), nullable=False)
    maintenance_date: Mapped[date] = mapped_column(Date, nullable=False)
    mileage: Mapped[int | None] = mapped_column(Integer)
    cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    agent: Mapped[str] = mapped_column(String(255), nullable=False)
    next_maintenance_date: Mapped[date | None] = mapped_column(Date)
    next_maintenance_mileage: Mapped[int | None] = mapped_column(Integer)
    observations: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
