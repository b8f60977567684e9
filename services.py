# services.py
"""Бизнес-логика шиномонтажа: договоры, прайс, клиенты, заказы, зарплата, склад."""

import logging
import re
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from passlib.context import CryptContext

from errors import (
    ConflictError, NotFoundError, PermissionDeniedError, ShopError, ValidationError
)
from main_models import (
    MATERIAL_KEYS, Bonus, Car, Client, ClientComparison, ClientRead,
    ClientTypeEnum, Contract, Material, MaterialCard, OnlineDate, Order,
    OrderCreate, OrderStatusEnum, PaymentMethodEnum, Penalty, RoleEnum,
    SalarySchemaEnum, Service, ServiceFamily, ServicePriceVariant, Statistics,
    Storage, User, Worker, WorkerStatistics
)
from repository import Repository

module_logger = logging.getLogger(__name__)

# spare, left_1, right_3, left_2_inner, right_4_outer ...
WHEEL_POSITION_RE = re.compile(r"^(spare|(left|right)_1|(left|right)_[2-4](_(inner|outer))?)$")

STATUS_ORDER = list(OrderStatusEnum)


def is_valid_wheel_position(position: str) -> bool:
    return bool(position) and WHEEL_POSITION_RE.match(position) is not None


def calculate_earnings(schema: Optional[str], salary: int, revenue: float) -> float:
    """Заработок по схеме: процент от выручки, фиксированная ставка или сама выручка."""
    if schema == SalarySchemaEnum.PERCENTAGE:
        return revenue * salary / 100
    if schema == SalarySchemaEnum.FIXED:
        return salary
    return revenue


def to_client_read(client: Client) -> ClientRead:
    return ClientRead(
        id=client.id,
        name=client.name,
        client_type=client.client_type,
        owner_phone=client.owner_phone,
        manager_phone=client.manager_phone,
        contract_id=client.contract_id,
        car_numbers=[car.number for car in client.cars],
        created_at=client.created_at,
        updated_at=client.updated_at,
    )


class ContractStore:
    def __init__(self, repo: Repository, logger: logging.Logger = module_logger):
        self.repo = repo
        self.logger = logger

    def create(self, contract: Contract) -> Contract:
        if not contract.number or not contract.number.strip():
            raise ValidationError("Номер договора обязателен")
        if not contract.client_type:
            raise ValidationError("Тип клиента обязателен")
        try:
            contract.client_type = ClientTypeEnum(contract.client_type)
        except ValueError:
            raise ValidationError(f"Неизвестный тип клиента: {contract.client_type}")
        contract = self.repo.create_contract(contract)
        self.logger.info(f"Создан договор №{contract.number} ({contract.client_type.value})")
        return contract

    def get_all(self) -> List[Contract]:
        return list(self.repo.get_all_contracts())

    def get(self, contract_id: int) -> Contract:
        return self.repo.get_contract(contract_id)

    def add_services(self, contract_id: int, items: Iterable[Tuple[str, int]]) -> List[Service]:
        """Заполняет прайс договора пачкой услуг в одной транзакции."""
        services = []
        for name, price in items:
            _validate_service_fields(name, price)
            services.append(Service(name=name, price=price, contract_id=contract_id))
        if not services:
            raise ValidationError("Список услуг пуст")
        return self.repo.add_services_to_contract(contract_id, services)


def _validate_service_fields(name: Optional[str], price) -> None:
    if not name or not name.strip():
        raise ValidationError("Название услуги обязательно")
    if not isinstance(price, int) or isinstance(price, bool) or price < 0:
        raise ValidationError("Цена услуги должна быть неотрицательным целым числом")


class ServiceCatalog:
    def __init__(self, repo: Repository, logger: logging.Logger = module_logger):
        self.repo = repo
        self.logger = logger

    def _check_refs(self, contract_id: Optional[int], material_card_id: Optional[int]) -> None:
        if not contract_id:
            raise ValidationError("Не указан договор")
        self.repo.get_contract(contract_id)
        if material_card_id is not None:
            self.repo.get_material_card(material_card_id)

    def create(self, name: str, price: int, contract_id: int, material_card_id: Optional[int] = None) -> int:
        _validate_service_fields(name, price)
        self._check_refs(contract_id, material_card_id)
        service = self.repo.create_service(Service(
            name=name, price=price, contract_id=contract_id, material_card_id=material_card_id))
        return service.id

    def get_all(self) -> List[Service]:
        return list(self.repo.get_all_services())

    def get(self, service_id: int) -> Service:
        return self.repo.get_service(service_id)

    def get_prices_by_contract(self, contract_id: int) -> List[Service]:
        self.repo.get_contract(contract_id)
        return list(self.repo.get_services_by_contract(contract_id))

    def get_all_with_prices(self) -> List[ServiceFamily]:
        """Группирует строки прайса по точному названию услуги.

        Строки приходят отсортированными по названию и номеру договора,
        поэтому достаточно одного прохода.
        """
        families: List[ServiceFamily] = []
        current: Optional[ServiceFamily] = None
        for _, contract_id, contract_number, name, price in self.repo.get_service_price_rows():
            if current is None or current.name != name:
                current = ServiceFamily(name=name, prices=[])
                families.append(current)
            current.prices.append(ServicePriceVariant(
                contract_id=contract_id, contract_name=contract_number, price=price))
        self.logger.debug(f"Собрано {len(families)} групп услуг")
        return families

    def update(self, service_id: int, name: str, price: int, contract_id: int,
               material_card_id: Optional[int] = None) -> Service:
        """Полная замена строки. Цены в уже созданных заказах не меняются."""
        _validate_service_fields(name, price)
        self.repo.get_service(service_id)
        self._check_refs(contract_id, material_card_id)
        return self.repo.update_service(service_id, {
            "name": name,
            "price": price,
            "contract_id": contract_id,
            "material_card_id": material_card_id,
        })

    def delete(self, service_id: int) -> None:
        self.repo.delete_service(service_id)


class ClientRegistry:
    def __init__(self, repo: Repository, logger: logging.Logger = module_logger):
        self.repo = repo
        self.logger = logger

    def _validate(self, client: Client) -> None:
        if not client.name or not client.name.strip():
            raise ValidationError("Имя клиента обязательно")
        if not client.client_type:
            raise ValidationError("Тип клиента обязателен")
        if not client.contract_id:
            raise ValidationError("Не указан договор клиента")
        self.repo.get_contract(client.contract_id)

    def create(self, client: Client) -> ClientRead:
        self._validate(client)
        client = self.repo.create_client(client)
        return to_client_read(client)

    def get_all(self) -> List[ClientRead]:
        return [to_client_read(c) for c in self.repo.get_all_clients()]

    def get(self, client_id: int) -> ClientRead:
        return to_client_read(self.repo.get_client(client_id))

    def update(self, client_id: int, data: Dict) -> ClientRead:
        self.repo.get_client(client_id)
        if "contract_id" in data:
            self.repo.get_contract(data["contract_id"])
        if "name" in data and not (data["name"] or "").strip():
            raise ValidationError("Имя клиента обязательно")
        return to_client_read(self.repo.update_client(client_id, data))

    def delete(self, client_id: int) -> None:
        self.repo.delete_client(client_id)

    def get_cars(self, client_id: int) -> List[Car]:
        self.repo.get_client(client_id)
        return list(self.repo.get_client_cars(client_id))

    def add_car(self, client_id: int, number: str, model: Optional[str] = None,
                year: Optional[int] = None) -> Car:
        number = (number or "").strip().upper()
        if not number:
            raise ValidationError("Номер машины обязателен")
        return self.repo.add_car_to_client(client_id, Car(number=number, model=model, year=year))

    def get_client_types(self) -> List[str]:
        return list(self.repo.get_client_types())

    def whose_car(self, number: str) -> List[ClientRead]:
        number = (number or "").strip().upper()
        return [to_client_read(c) for c in self.repo.get_clients_by_car(number)]

    def compare_for_car(self, number: str) -> List[ClientComparison]:
        """Прайсы всех клиентов, к которым привязана машина."""
        number = (number or "").strip().upper()
        clients = self.repo.get_clients_by_car(number)
        if not clients:
            raise NotFoundError(f"Машина с номером {number} не привязана ни к одному клиенту")
        return [
            ClientComparison(
                client=to_client_read(client),
                services=list(self.repo.get_services_by_contract(client.contract_id)),
            )
            for client in clients
        ]

    def upload_cars(self, client_id: int, rows: Iterable[Tuple[str, Optional[str], Optional[int]]]) -> Dict:
        """Привязывает машины из файла. Возвращает отчет {added, skipped, errors}."""
        self.repo.get_client(client_id)
        added, skipped, errors = 0, 0, []
        for row_num, (number, model, year) in enumerate(rows, start=2):
            try:
                self.add_car(client_id, number, model, year)
                added += 1
            except ConflictError:
                skipped += 1
            except ShopError as e:
                errors.append(f"Строка {row_num}: {e.message}")
        self.logger.info(
            f"Загрузка машин клиенту ID:{client_id}: добавлено {added}, пропущено {skipped}, ошибок {len(errors)}")
        return {"added": added, "skipped": skipped, "errors": errors}


class OrderEngine:
    def __init__(self, repo: Repository, logger: logging.Logger = module_logger):
        self.repo = repo
        self.logger = logger

    def _validate(self, order: OrderCreate) -> None:
        if not order.client_id:
            raise ValidationError("ID клиента обязателен")
        if not order.vehicle_number or not order.vehicle_number.strip():
            raise ValidationError("Номер машины обязателен")
        if not order.payment_method:
            raise ValidationError("Метод оплаты обязателен")
        try:
            PaymentMethodEnum(order.payment_method)
        except ValueError:
            raise ValidationError(f"Неизвестный метод оплаты: {order.payment_method}")
        if not order.services:
            raise ValidationError("Заказ должен содержать хотя бы одну услугу")
        for i, line in enumerate(order.services, start=1):
            if not line.service_id:
                raise ValidationError(f"Услуга {i}: ID услуги обязателен")
            if line.price <= 0:
                raise ValidationError(f"Услуга {i}: цена должна быть больше нуля")
            if not is_valid_wheel_position(line.wheel_position):
                raise ValidationError(f"Услуга {i}: неверная позиция колеса '{line.wheel_position}'")

    def _resolve_worker_id(self, order: OrderCreate, principal: dict) -> int:
        role = principal.get("role")
        if role == RoleEnum.WORKER:
            worker = self.repo.get_worker_by_user_id(principal.get("user_id"))
            if worker is None:
                raise NotFoundError("Работник для текущего пользователя не найден")
            if order.worker_id and order.worker_id != worker.id:
                self.logger.warning(
                    f"Работник ID:{worker.id} пытался создать заказ от имени ID:{order.worker_id}")
            return worker.id
        if role == RoleEnum.MANAGER:
            if not order.worker_id:
                raise ValidationError("ID работника обязателен")
            return self.repo.get_worker(order.worker_id).id
        raise ValidationError(f"Неизвестная роль: {role}")

    def _header_fields(self, order: OrderCreate) -> Dict:
        self.repo.get_client(order.client_id)
        return {
            "client_id": order.client_id,
            "vehicle_number": order.vehicle_number.strip().upper(),
            "payment_method": PaymentMethodEnum(order.payment_method),
            "total_amount": sum(line.price for line in order.services),
        }

    def create(self, order: OrderCreate, principal: dict) -> int:
        self._validate(order)
        worker_id = self._resolve_worker_id(order, principal)
        header = Order(worker_id=worker_id, status=order.status or OrderStatusEnum.PLANNED,
                       **self._header_fields(order))
        db_order = self.repo.create_order(header, order.services)
        self.logger.info(
            f"Заказ ID:{db_order.id} на сумму {db_order.total_amount} создан работником ID:{worker_id}")
        return db_order.id

    def get_all(self) -> List[Order]:
        return list(self.repo.get_all_orders())

    def get(self, order_id: int) -> Order:
        return self.repo.get_order(order_id)

    def get_by_worker(self, worker_id: int) -> List[Order]:
        return list(self.repo.get_orders_by_worker(worker_id))

    def get_by_worker_and_range(self, worker_id: int, start: datetime, end: datetime) -> List[Order]:
        if end <= start:
            raise ValidationError("Конец периода должен быть позже начала")
        return list(self.repo.get_orders_by_worker_and_range(worker_id, start, end))

    def update(self, order_id: int, order: OrderCreate) -> Order:
        """Обновляет шапку и заменяет все строки заказа."""
        self._validate(order)
        if not order.worker_id:
            raise ValidationError("ID работника обязателен")
        self.repo.get_worker(order.worker_id)
        fields = self._header_fields(order)
        fields["worker_id"] = order.worker_id
        current = self.repo.get_order(order_id)
        if order.status is not None:
            _check_transition(current.status, order.status)
            fields["status"] = order.status
        return self.repo.update_order(order_id, fields, order.services)

    def update_status(self, order_id: int, status: OrderStatusEnum) -> Order:
        current = self.repo.get_order(order_id)
        if current.status == status:
            return current
        _check_transition(current.status, status)
        order = self.repo.update_order_status(order_id, status)
        self.logger.info(f"Статус заказа ID:{order_id}: {current.status.value} -> {status.value}")
        return order

    def delete(self, order_id: int) -> None:
        self.repo.delete_order(order_id)

    def get_statistics(self) -> Statistics:
        total_orders, total_revenue, total_workers, total_clients, average = self.repo.get_order_statistics()
        return Statistics(
            total_orders=total_orders or 0,
            total_revenue=int(total_revenue or 0),
            total_workers=total_workers or 0,
            total_clients=total_clients or 0,
            average_order_value=float(average or 0),
        )


def _check_transition(current: OrderStatusEnum, new: OrderStatusEnum) -> None:
    if STATUS_ORDER.index(new) < STATUS_ORDER.index(current):
        raise ValidationError(
            f"Нельзя перевести заказ из статуса '{current.value}' в '{new.value}'")


class WorkerLedger:
    def __init__(self, repo: Repository, pwd_context: Optional[CryptContext] = None,
                 logger: logging.Logger = module_logger):
        self.repo = repo
        self.pwd_context = pwd_context
        self.logger = logger

    def create(self, worker: Worker, password: Optional[str] = None) -> Worker:
        """Создает работника; при наличии email и пароля заводит ему учетную запись."""
        if not worker.name or not worker.name.strip():
            raise ValidationError("Имя работника обязательно")
        user = None
        if worker.email and password:
            if self.repo.get_user_by_email(worker.email):
                raise ConflictError(f"Пользователь с email {worker.email} уже существует")
            user = User(
                name=worker.name,
                email=worker.email,
                password_hash=self.pwd_context.hash(password),
                role=RoleEnum.WORKER,
            )
        return self.repo.create_worker(worker, user)

    def get_all(self) -> List[Worker]:
        return list(self.repo.get_all_workers())

    def get(self, worker_id: int) -> Worker:
        return self.repo.get_worker(worker_id)

    def get_by_user_id(self, user_id: int) -> Worker:
        worker = self.repo.get_worker_by_user_id(user_id)
        if worker is None:
            raise NotFoundError("Работник для текущего пользователя не найден")
        return worker

    def update(self, worker_id: int, data: Dict) -> Worker:
        return self.repo.update_worker(worker_id, data)

    def delete(self, worker_id: int) -> None:
        self.repo.delete_worker(worker_id)

    def _add_entry(self, model, worker_id: int, amount: int, description: str,
                   order_id: Optional[int]):
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise ValidationError("Сумма должна быть положительным целым числом")
        try:
            self.repo.get_worker(worker_id)
        except NotFoundError:
            raise NotFoundError("работник не найден")
        if order_id is not None:
            self.repo.get_order(order_id)
        entry = self.repo.add_ledger_entry(model(
            worker_id=worker_id, delta=amount, description=description or "", order_id=order_id))
        self.logger.info(f"{model.__name__} {amount} начислен работнику ID:{worker_id}")
        return entry

    def add_penalty(self, worker_id: int, amount: int, description: str = "",
                    order_id: Optional[int] = None) -> Penalty:
        return self._add_entry(Penalty, worker_id, amount, description, order_id)

    def add_bonus(self, worker_id: int, amount: int, description: str = "",
                  order_id: Optional[int] = None) -> Bonus:
        return self._add_entry(Bonus, worker_id, amount, description, order_id)

    def get_penalties(self, worker_id: int) -> List[Penalty]:
        self.repo.get_worker(worker_id)
        return list(self.repo.get_ledger_entries(Penalty, worker_id))

    def get_bonuses(self, worker_id: int) -> List[Bonus]:
        self.repo.get_worker(worker_id)
        return list(self.repo.get_ledger_entries(Bonus, worker_id))

    def get_statistic(self, worker_id: int, start: datetime, end: datetime) -> WorkerStatistics:
        if end <= start:
            raise ValidationError("Конец периода должен быть позже начала")
        worker = self.repo.get_worker(worker_id)
        total_orders, revenue, bonus, penalties = self.repo.get_worker_statistic(worker_id, start, end)
        revenue = int(revenue or 0)
        bonus = int(bonus or 0)
        penalties = int(penalties or 0)
        earnings = calculate_earnings(worker.salary_schema, worker.salary, revenue)
        return WorkerStatistics(
            worker_id=worker.id,
            worker_name=worker.name,
            worker_surname=worker.surname,
            worker_phone=worker.phone,
            salary_schema=worker.salary_schema,
            total_orders=total_orders or 0,
            total_revenue=revenue,
            total_bonus=bonus,
            total_penalties=penalties,
            total_salary=earnings + bonus - penalties,
        )

    def salary(self, worker_id: int, start: datetime) -> float:
        """Заработок за сутки, начиная со start."""
        worker = self.repo.get_worker(worker_id)
        _, revenue, _, _ = self.repo.get_worker_statistic(worker_id, start, start + timedelta(hours=24))
        return calculate_earnings(worker.salary_schema, worker.salary, float(revenue or 0))


class Inventory:
    def __init__(self, repo: Repository, logger: logging.Logger = module_logger):
        self.repo = repo
        self.logger = logger

    def create(self, material: Material) -> Material:
        if not material.name or not material.name.strip():
            raise ValidationError("Название материала обязательно")
        if material.storage < 0:
            raise ValidationError("Остаток не может быть отрицательным")
        return self.repo.create_material(material)

    def get_all(self) -> List[Material]:
        return list(self.repo.get_all_materials())

    def get(self, material_id: int) -> Material:
        return self.repo.get_material(material_id)

    def get_by_name_and_type(self, name: str, type_ds: int) -> Material:
        material = self.repo.get_material_by_name_and_type(name, type_ds)
        if material is None:
            raise NotFoundError(f"Материал '{name}' с типом ДС {type_ds} не найден")
        return material

    def update(self, material_id: int, data: Dict) -> Material:
        if data.get("storage") is not None and data["storage"] < 0:
            raise ValidationError("Остаток не может быть отрицательным")
        current = self.repo.get_material(material_id)
        name = data.get("name", current.name)
        type_ds = data.get("type_ds", current.type_ds)
        duplicate = self.repo.get_material_by_name_and_type(name, type_ds)
        if duplicate and duplicate.id != material_id:
            raise ConflictError(f"Материал с названием '{name}' и типом ДС {type_ds} уже существует")
        return self.repo.update_material(material_id, data)

    def delete(self, material_id: int) -> None:
        self.repo.delete_material(material_id)

    def add_quantity(self, material_id: int, quantity: int) -> Material:
        if quantity <= 0:
            raise ValidationError("Количество должно быть больше нуля")
        return self.repo.change_material_quantity(material_id, quantity)

    def subtract_quantity(self, material_id: int, quantity: int) -> Material:
        if quantity <= 0:
            raise ValidationError("Количество должно быть больше нуля")
        material = self.repo.change_material_quantity(material_id, -quantity)
        self.logger.info(f"Со склада списано {quantity} ед. материала ID:{material_id}")
        return material

    def _validate_quantities(self, values: Dict[str, int]) -> None:
        for key in MATERIAL_KEYS:
            if (values.get(key) or 0) < 0:
                raise ValidationError(f"Количество '{key}' не может быть отрицательным")

    def create_card(self, card: MaterialCard) -> MaterialCard:
        self._validate_quantities(card.model_dump())
        return self.repo.create_material_card(card)

    def get_all_cards(self) -> List[MaterialCard]:
        return list(self.repo.get_all_material_cards())

    def get_card(self, card_id: int) -> MaterialCard:
        return self.repo.get_material_card(card_id)

    def update_card(self, card_id: int, data: Dict) -> MaterialCard:
        self._validate_quantities(data)
        return self.repo.update_material_card(card_id, data)

    def delete_card(self, card_id: int) -> None:
        self.repo.delete_material_card(card_id)

    def get_storage(self) -> Storage:
        return self.repo.get_storage()

    def add_delivery(self, delta: Dict[str, int]) -> Storage:
        unknown = set(delta) - set(MATERIAL_KEYS)
        if unknown:
            raise ValidationError(f"Неизвестные расходники: {', '.join(sorted(unknown))}")
        self._validate_quantities(delta)
        storage = self.repo.add_delivery(delta)
        self.logger.info(f"Поставка на склад принята: {delta}")
        return storage

    def spell_material(self, card_id: int) -> Storage:
        """Списывает со склада расходники по техкарте целиком или не списывает ничего."""
        card = self.repo.get_material_card(card_id)
        try:
            storage = self.repo.spell_material(card)
        except ShopError:
            self.logger.warning(f"Списание по техкарте ID:{card_id} отклонено: не хватает расходников")
            raise
        self.logger.info(f"Расходники по техкарте ID:{card_id} списаны")
        return storage


class BookingDesk:
    def __init__(self, repo: Repository, logger: logging.Logger = module_logger):
        self.repo = repo
        self.logger = logger

    def create(self, date: datetime, name: str, phone: str, car_number: str,
               client_desc: Optional[str] = None) -> OnlineDate:
        if not name or not name.strip():
            raise ValidationError("Имя обязательно")
        if not phone or not phone.strip():
            raise ValidationError("Телефон обязателен")
        if not car_number or not car_number.strip():
            raise ValidationError("Номер машины обязателен")
        online_date = self.repo.create_online_date(OnlineDate(
            date=date, name=name.strip(), phone=phone.strip(),
            car_number=car_number.strip().upper(), client_desc=client_desc))
        self.logger.info(f"Новая онлайн запись на {date} ({online_date.car_number})")
        return online_date

    def get_all(self) -> List[OnlineDate]:
        return list(self.repo.get_online_dates())

    def update(self, date_id: int, data: Dict) -> OnlineDate:
        return self.repo.update_online_date(date_id, data)


class AuthService:
    def __init__(self, repo: Repository, pwd_context: CryptContext,
                 logger: logging.Logger = module_logger):
        self.repo = repo
        self.pwd_context = pwd_context
        self.logger = logger

    def register(self, name: str, email: str, password: str, role: RoleEnum = RoleEnum.WORKER,
                 allow_manager: bool = False) -> User:
        """Создаёт пользователя. Аккаунт менеджера может завести только другой менеджер."""
        if not name or not email or not password:
            raise ValidationError("Имя, email и пароль обязательны")
        if role == RoleEnum.MANAGER and not allow_manager:
            self.logger.warning(f"Отклонена самостоятельная регистрация менеджера: {email}")
            raise PermissionDeniedError("Самостоятельная регистрация доступна только работникам")
        if self.repo.get_user_by_email(email):
            raise ConflictError(f"Пользователь с email {email} уже существует")
        user = User(name=name, email=email, password_hash=self.pwd_context.hash(password), role=role)
        if role == RoleEnum.WORKER:
            self.repo.create_worker(Worker(name=name, email=email), user)
        else:
            user = self.repo.create_user(user)
        self.logger.info(f"Зарегистрирован пользователь {email} с ролью {role.value}")
        return user

    def authenticate(self, email: str, password: str) -> Optional[User]:
        user = self.repo.get_user_by_email(email)
        if not user or not self.pwd_context.verify(password, user.password_hash):
            self.logger.warning(f"Неудачная попытка входа: {email}")
            return None
        return user

    def token_claims(self, user: User) -> dict:
        """Данные для JWT: email, роль, ID пользователя и ID работника."""
        worker = self.repo.get_worker_by_user_id(user.id)
        return {
            "sub": user.email,
            "role": user.role.value,
            "user_id": user.id,
            "worker_id": worker.id if worker else None,
        }
