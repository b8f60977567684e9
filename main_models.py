# main_models.py

from datetime import datetime
from typing import List, Optional
from enum import Enum

from pydantic import BaseModel, ConfigDict
from sqlmodel import Field, SQLModel, Relationship
from sqlalchemy import CheckConstraint, UniqueConstraint

# --- Перечисления (Enums) для стандартизации полей ---


class RoleEnum(str, Enum):
    """Роли пользователей"""
    WORKER = "worker"
    MANAGER = "manager"


class ClientTypeEnum(str, Enum):
    """Категории клиентов, к которым привязываются договоры"""
    CASH = "Наличка"
    COUNTERPARTY = "Контрагент"
    AGGREGATOR = "Агрегатор"


class OrderStatusEnum(str, Enum):
    """Статусы заказа. Порядок объявления = порядок переходов"""
    PLANNED = "запланирован"
    IN_PROGRESS = "выполняется"
    COMPLETED = "выполнен"


class PaymentMethodEnum(str, Enum):
    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"


class SalarySchemaEnum(str, Enum):
    """Схема расчета зарплаты работника"""
    PERCENTAGE = "percentage"
    FIXED = "fixed"


# Колонки расходников: одинаковы у техкарты (рецепта) и у склада
MATERIAL_KEYS = ("rs25", "r19", "r20", "r25", "r251",
                 "r13", "r15", "foot9", "foot12", "foot15")

# --- Основные модели таблиц ---


class User(SQLModel, table=True):
    """Учетная запись для входа в систему"""
    __tablename__ = "users"
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(index=True, unique=True)
    password_hash: str
    role: RoleEnum = Field(default=RoleEnum.WORKER)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Worker(SQLModel, table=True):
    """Таблица работников (шиномонтажников)"""
    id: Optional[int] = Field(default=None, primary_key=True)
    # Явная связь с учетной записью вместо сопоставления по имени
    user_id: Optional[int] = Field(
        default=None, foreign_key="users.id", unique=True)
    name: str = Field(index=True)
    surname: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    salary_schema: Optional[SalarySchemaEnum] = None
    # Процент для процентной схемы, ставка для фиксированной
    salary: int = 0
    has_car: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Contract(SQLModel, table=True):
    """Договор: категория клиента + собственный прайс-лист"""
    id: Optional[int] = Field(default=None, primary_key=True)
    number: str = Field(index=True, unique=True)
    client_type: ClientTypeEnum
    description: Optional[str] = None
    client_company_name: Optional[str] = None
    client_company_address: Optional[str] = None
    client_company_phone: Optional[str] = None
    client_company_email: Optional[str] = None
    client_company_inn: Optional[str] = None
    client_company_kpp: Optional[str] = None
    client_company_ogrn: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    services: List["Service"] = Relationship(back_populates="contract")


class MaterialQuantities(SQLModel):
    """Количества расходников по типам"""
    rs25: int = 0
    r19: int = 0
    r20: int = 0
    r25: int = 0
    r251: int = 0
    r13: int = 0
    r15: int = 0
    foot9: int = 0
    foot12: int = 0
    foot15: int = 0


class MaterialCard(MaterialQuantities, table=True):
    """Техкарта: сколько расходников уходит на одну услугу"""
    __tablename__ = "material_card"
    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Storage(MaterialQuantities, table=True):
    """Остатки расходников на складе (единственная строка)"""
    __table_args__ = tuple(
        CheckConstraint(f"{key} >= 0", name=f"ck_storage_{key}_non_negative")
        for key in MATERIAL_KEYS
    )
    id: Optional[int] = Field(default=None, primary_key=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Service(SQLModel, table=True):
    """Услуга и её цена в рамках одного договора"""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    price: int = 0
    contract_id: int = Field(foreign_key="contract.id", index=True)
    material_card_id: Optional[int] = Field(
        default=None, foreign_key="material_card.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    contract: Optional[Contract] = Relationship(back_populates="services")


class ClientCar(SQLModel, table=True):
    """Связь клиент-машина (одна машина может быть у нескольких клиентов)"""
    __tablename__ = "clients_cars"
    client_id: int = Field(foreign_key="client.id", primary_key=True)
    car_id: int = Field(foreign_key="car.id", primary_key=True)


class Client(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    # Совпадает с категорией договора, но жестко не проверяется
    client_type: str
    owner_phone: Optional[str] = None
    manager_phone: Optional[str] = None
    contract_id: int = Field(foreign_key="contract.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    cars: List["Car"] = Relationship(
        back_populates="clients", link_model=ClientCar)


class Car(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    number: str = Field(index=True, unique=True)
    model: Optional[str] = None
    year: Optional[int] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    clients: List[Client] = Relationship(
        back_populates="cars", link_model=ClientCar)


class Order(SQLModel, table=True):
    """Заказ-наряд"""
    __tablename__ = "orders"
    id: Optional[int] = Field(default=None, primary_key=True)
    status: OrderStatusEnum = Field(default=OrderStatusEnum.PLANNED)
    worker_id: int = Field(foreign_key="worker.id", index=True)
    client_id: int = Field(foreign_key="client.id", index=True)
    # Номер хранится строкой, без ссылки на таблицу машин
    vehicle_number: str
    payment_method: PaymentMethodEnum
    total_amount: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    services: List["OrderService"] = Relationship(
        back_populates="order",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"})


class OrderService(SQLModel, table=True):
    """Строка заказа: одна услуга на одном колесе"""
    __tablename__ = "order_services"
    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="orders.id", index=True)
    service_id: int = Field(foreign_key="service.id")
    service_description: str = ""
    wheel_position: str
    # Снимок цены на момент заказа, а не ссылка на прайс
    price: int
    created_at: datetime = Field(default_factory=datetime.utcnow)

    order: Optional[Order] = Relationship(back_populates="services")


class LedgerEntryBase(SQLModel):
    worker_id: int = Field(foreign_key="worker.id", index=True)
    delta: int
    description: str = ""
    order_id: Optional[int] = Field(default=None, foreign_key="orders.id")
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)


class Penalty(LedgerEntryBase, table=True):
    """Штраф работника"""
    id: Optional[int] = Field(default=None, primary_key=True)


class Bonus(LedgerEntryBase, table=True):
    """Премия работника"""
    id: Optional[int] = Field(default=None, primary_key=True)


class Material(SQLModel, table=True):
    """Материал с собственным остатком"""
    __table_args__ = (
        UniqueConstraint("name", "type_ds", name="uq_material_name_type"),
        CheckConstraint("storage >= 0", name="ck_material_storage_non_negative"),
    )
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    type_ds: int = 1
    storage: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class OnlineDate(SQLModel, table=True):
    """Онлайн-запись клиента на шиномонтаж"""
    __tablename__ = "online_date"
    id: Optional[int] = Field(default=None, primary_key=True)
    date: datetime = Field(index=True)
    name: str
    phone: str
    car_number: str
    client_desc: Optional[str] = None
    manager_desc: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


# --- Модели для передачи данных между слоями ---


class OrderServiceCreate(BaseModel):
    service_id: int
    service_description: str = ""
    wheel_position: str
    price: int


class OrderCreate(BaseModel):
    status: Optional[OrderStatusEnum] = None
    worker_id: Optional[int] = None
    client_id: Optional[int] = None
    vehicle_number: Optional[str] = None
    payment_method: Optional[str] = None
    services: List[OrderServiceCreate] = []


class OrderServiceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    service_id: int
    service_description: str
    wheel_position: str
    price: int


class OrderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: OrderStatusEnum
    worker_id: int
    client_id: int
    vehicle_number: str
    payment_method: PaymentMethodEnum
    total_amount: int
    created_at: datetime
    updated_at: datetime
    services: List[OrderServiceRead]


class ClientRead(BaseModel):
    id: int
    name: str
    client_type: str
    owner_phone: Optional[str]
    manager_phone: Optional[str]
    contract_id: int
    car_numbers: List[str] = []
    created_at: datetime
    updated_at: datetime


class ServicePriceVariant(BaseModel):
    contract_id: int
    contract_name: str
    price: int


class ServiceFamily(BaseModel):
    """Одна логическая услуга с ценами по всем договорам"""
    name: str
    prices: List[ServicePriceVariant] = []


class ClientComparison(BaseModel):
    client: ClientRead
    services: List[Service]


class Statistics(BaseModel):
    total_orders: int = 0
    total_revenue: int = 0
    total_workers: int = 0
    total_clients: int = 0
    average_order_value: float = 0


class WorkerStatistics(BaseModel):
    worker_id: int
    worker_name: str
    worker_surname: str
    worker_phone: Optional[str]
    salary_schema: Optional[SalarySchemaEnum]
    total_orders: int = 0
    total_revenue: int = 0
    total_bonus: int = 0
    total_penalties: int = 0
    total_salary: float = 0
