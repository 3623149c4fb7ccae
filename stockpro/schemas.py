"""Request payloads accepted by the API and captured by pending operations."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from stockpro.auth import Permission
from stockpro.models import ExitType, MovementStatus, UserRole, UserStatus, VehicleType
from stockpro.security.passwords import MIN_PASSWORD_LENGTH

Region = Literal['Dakar', 'Diourbel', 'Kaolack', 'Louga', 'Saint-Louis', 'Tambacounda', 'Ziguinchor', 'Thiès']
ReformReason = Literal['Vétusté', 'Accident majeur', 'Coûts élevés', 'Fin de vie', 'Autre']
ReformDestination = Literal['Vente', 'Don', 'Destruction', 'Stockage']

Quantity = Annotated[int, Field(ge=1)]
Money = Annotated[Decimal, Field(ge=0, max_digits=12, decimal_places=2)]
RequiredText = Annotated[str, Field(min_length=1)]


class Payload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


class ProductCreate(Payload):
    ref: str | None = None
    name: RequiredText
    category: str | None = None
    category_id: int | None = None
    unit: str | None = None
    quantity: int = Field(default=0, ge=0)
    price: Money = Decimal('0')
    critical_level: int | None = Field(default=None, ge=0)
    supplier: str | None = None
    acquirer: str | None = None
    beneficiary: str | None = None
    acquired_at: date | None = None
    description: str | None = None


class ProductUpdate(Payload):
    # Quantity is absent on purpose: stock only moves through receipts,
    # stock-outs and inventory counts.
    ref: str | None = None
    name: RequiredText | None = None
    category: str | None = None
    category_id: int | None = None
    unit: str | None = None
    price: Money | None = None
    critical_level: int | None = Field(default=None, ge=0)
    supplier: str | None = None
    acquirer: str | None = None
    beneficiary: str | None = None
    acquired_at: date | None = None
    description: str | None = None

    @field_validator('name', 'category', 'price', 'critical_level', mode='before')
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError('may be omitted but not null')
        return value


class ReceiptItemIn(Payload):
    product_id: int | None = Field(default=None, gt=0)
    product_name: str | None = None
    product_ref: str | None = None
    product_category: str | None = None
    product_category_id: int | None = None
    quantity: Quantity
    unit_price: Money | None = None

    @model_validator(mode='after')
    def _product_is_identified(self) -> 'ReceiptItemIn':
        if self.product_id is None and not self.product_name:
            raise ValueError('product_id or product_name is required')
        return self


class ReceiptCreate(Payload):
    ref: str | None = None
    supplier: str | None = None
    agent: RequiredText
    acquirer: str | None = None
    persons_present: str | None = None
    received_at: date
    notes: str | None = None
    items: list[ReceiptItemIn] = Field(min_length=1)


class ReceiptUpdate(Payload):
    supplier: str | None = None
    agent: RequiredText | None = None
    acquirer: str | None = None
    persons_present: str | None = None
    received_at: date | None = None
    notes: str | None = None

    @field_validator('agent', 'received_at', mode='before')
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError('may be omitted but not null')
        return value


class StockOutCreate(Payload):
    product_id: int = Field(gt=0)
    quantity: Quantity
    beneficiary: str | None = None
    agent: str | None = None
    notes: str | None = None
    movement_date: date
    exit_type: ExitType | None = None
    status: MovementStatus | None = None


class InventoryItemIn(Payload):
    product_id: int = Field(gt=0)
    counted_qty: int = Field(ge=0)


class InventoryCreate(Payload):
    agent: RequiredText
    counted_at: date
    notes: str | None = None
    items: list[InventoryItemIn] = Field(min_length=1)

    @model_validator(mode='after')
    def _one_line_per_product(self) -> 'InventoryCreate':
        product_ids = [item.product_id for item in self.items]
        if len(product_ids) != len(set(product_ids)):
            raise ValueError('Each product can only be counted once per inventory')
        return self


class VehicleCreate(Payload):
    type: VehicleType
    designation: RequiredText
    chassis_number: RequiredText
    plate_number: RequiredText
    acquisition_date: date
    acquirer: RequiredText
    reception_commission: str | None = None
    observations: str | None = None


class VehicleAssign(Payload):
    vehicle_id: int = Field(gt=0)
    region: Region
    recipient: RequiredText
    structure: str | None = None
    district: str | None = None


class VehicleUnassign(Payload):
    agent: RequiredText
    reason: RequiredText


class VehicleReform(Payload):
    reform_reason: ReformReason
    reform_agent: RequiredText
    reform_destination: ReformDestination
    reform_notes: str | None = None


class MaintenanceCreate(Payload):
    vehicle_id: int = Field(gt=0)
    type: RequiredText
    maintenance_date: date
    mileage: int | None = Field(default=None, ge=0)
    cost: Money
    agent: RequiredText
    next_maintenance_date: date | None = None
    next_maintenance_mileage: int | None = Field(default=None, ge=0)
    observations: str | None = None


class NeedCreate(Payload):
    product_id: int = Field(gt=0)
    quantity: Quantity
    reason: str = Field(min_length=1, max_length=1000)


class RejectRequest(Payload):
    reason: str | None = Field(default=None, max_length=500)


class UserCreate(Payload):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=MIN_PASSWORD_LENGTH)
    role: UserRole
    status: UserStatus = UserStatus.ACTIVE
    permissions: list[Permission] | None = None


class UserUpdate(Payload):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: EmailStr | None = None
    password: str | None = Field(default=None, min_length=MIN_PASSWORD_LENGTH)
    role: UserRole | None = None
    status: UserStatus | None = None
    permissions: list[Permission] | None = None


class UserInvite(Payload):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    role: UserRole
    permissions: list[Permission] | None = None


class LoginRequest(Payload):
    email: EmailStr
    password: str


class TokenValidateRequest(Payload):
    token: RequiredText


class ActivateRequest(Payload):
    token: RequiredText
    password: str = Field(min_length=MIN_PASSWORD_LENGTH)
    password_confirmation: str

    @model_validator(mode='after')
    def _passwords_match(self) -> 'ActivateRequest':
        if self.password != self.password_confirmation:
            raise ValueError('Password confirmation does not match')
        return self


class ReceiptOperation(Payload):
    type: Literal['receipt']
    data: ReceiptCreate


class StockOutOperation(Payload):
    type: Literal['stockout']
    data: StockOutCreate


class VehicleOperation(Payload):
    type: Literal['vehicle']
    data: VehicleCreate


OperationRequest = Annotated[
    Union[ReceiptOperation, StockOutOperation, VehicleOperation],
    Field(discriminator='type'),
]
