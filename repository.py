# repository.py
"""Слой хранения: по одному методу на каждую операцию с сущностью."""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload
from sqlmodel import Session, select

import config
from errors import (
    ConflictError, InfrastructureError, InsufficientInventoryError, NotFoundError
)
from main_models import (
    MATERIAL_KEYS, Bonus, Car, Client, ClientCar, Contract, Material,
    MaterialCard, OnlineDate, Order, OrderService, OrderServiceCreate,
    OrderStatusEnum, Penalty, Service, Storage, User, Worker
)

logger = logging.getLogger(__name__)


class Repository:
    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def transaction(self):
        """Коммит при успехе, полный откат при любой ошибке."""
        try:
            yield self.session
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            logger.warning(f"Нарушение ограничения целостности: {e.orig}")
            raise ConflictError("Запись нарушает ограничение уникальности") from e
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.exception(f"Ошибка базы данных: {e}")
            raise InfrastructureError(f"Ошибка базы данных: {e}") from e
        except Exception:
            self.session.rollback()
            raise

    def _read(self, statement):
        try:
            return self.session.exec(statement)
        except SQLAlchemyError as e:
            logger.exception(f"Ошибка чтения из базы данных: {e}")
            raise InfrastructureError(f"Ошибка базы данных: {e}") from e

    def _get_or_404(self, model, obj_id: int, label: str):
        obj = self.session.get(model, obj_id)
        if not obj:
            raise NotFoundError(f"{label} с ID {obj_id} не найден")
        return obj

    # --- Пользователи ---

    def create_user(self, user: User) -> User:
        with self.transaction():
            self.session.add(user)
        self.session.refresh(user)
        return user

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self._read(select(User).where(User.email == email)).first()

    def get_user(self, user_id: int) -> User:
        return self._get_or_404(User, user_id, "Пользователь")

    # --- Работники ---

    def create_worker(self, worker: Worker, user: Optional[User] = None) -> Worker:
        with self.transaction():
            if user is not None:
                self.session.add(user)
                self.session.flush()
                worker.user_id = user.id
            self.session.add(worker)
        self.session.refresh(worker)
        logger.info(f"Работник создан с ID: {worker.id}")
        return worker

    def get_all_workers(self) -> Sequence[Worker]:
        return self._read(select(Worker).order_by(Worker.name)).all()

    def get_worker(self, worker_id: int) -> Worker:
        return self._get_or_404(Worker, worker_id, "Работник")

    def get_worker_by_user_id(self, user_id: int) -> Optional[Worker]:
        return self._read(select(Worker).where(Worker.user_id == user_id)).first()

    def update_worker(self, worker_id: int, data: Dict) -> Worker:
        with self.transaction():
            db_worker = self._get_or_404(Worker, worker_id, "Работник")
            for key, value in data.items():
                setattr(db_worker, key, value)
            db_worker.updated_at = datetime.utcnow()
            self.session.add(db_worker)
        self.session.refresh(db_worker)
        return db_worker

    def delete_worker(self, worker_id: int) -> None:
        with self.transaction():
            db_worker = self._get_or_404(Worker, worker_id, "Работник")
            has_orders = self.session.exec(
                select(Order.id).where(Order.worker_id == worker_id)).first()
            if has_orders:
                raise ConflictError(
                    "Нельзя удалить работника, так как за ним числятся заказы.")
            for model in (Penalty, Bonus):
                for entry in self.session.exec(select(model).where(model.worker_id == worker_id)).all():
                    self.session.delete(entry)
            self.session.delete(db_worker)
        logger.info(f"Работник ID {worker_id} удален")

    # --- Договоры ---

    def create_contract(self, contract: Contract) -> Contract:
        with self.transaction():
            if self.get_contract_by_number(contract.number):
                raise ConflictError(
                    f"Договор с номером {contract.number} уже существует")
            self.session.add(contract)
        self.session.refresh(contract)
        logger.info(f"Договор успешно создан с ID: {contract.id}")
        return contract

    def get_all_contracts(self) -> Sequence[Contract]:
        return self._read(select(Contract).order_by(Contract.number)).all()

    def get_contract(self, contract_id: int) -> Contract:
        return self._get_or_404(Contract, contract_id, "Договор")

    def get_contract_by_number(self, number: str) -> Optional[Contract]:
        return self._read(select(Contract).where(Contract.number == number)).first()

    def add_services_to_contract(self, contract_id: int, services: List[Service]) -> List[Service]:
        with self.transaction():
            self._get_or_404(Contract, contract_id, "Договор")
            for service in services:
                service.contract_id = contract_id
                self.session.add(service)
        for service in services:
            self.session.refresh(service)
        logger.info(f"Услуги успешно добавлены к договору ID:{contract_id}")
        return services

    # --- Услуги (прайс) ---

    def create_service(self, service: Service) -> Service:
        with self.transaction():
            self.session.add(service)
        self.session.refresh(service)
        logger.info(f"Услуга успешно создана с ID: {service.id}")
        return service

    def get_all_services(self) -> Sequence[Service]:
        return self._read(select(Service).order_by(Service.name, Service.contract_id)).all()

    def get_service(self, service_id: int) -> Service:
        return self._get_or_404(Service, service_id, "Услуга")

    def get_services_by_contract(self, contract_id: int) -> Sequence[Service]:
        return self._read(select(Service).where(
            Service.contract_id == contract_id).order_by(Service.name)).all()

    def get_service_price_rows(self) -> Sequence[Tuple[int, int, str, str, int]]:
        """(id, contract_id, номер договора, название услуги, цена)"""
        return self._read(
            select(Service.id, Service.contract_id, Contract.number, Service.name, Service.price)
            .join(Contract, Service.contract_id == Contract.id)
            .order_by(Service.name, Contract.number)
        ).all()

    def update_service(self, service_id: int, data: Dict) -> Service:
        with self.transaction():
            db_service = self._get_or_404(Service, service_id, "Услуга")
            for key, value in data.items():
                setattr(db_service, key, value)
            db_service.updated_at = datetime.utcnow()
            self.session.add(db_service)
        self.session.refresh(db_service)
        logger.info(f"Данные услуги ID {service_id} успешно обновлены")
        return db_service

    def delete_service(self, service_id: int) -> None:
        with self.transaction():
            db_service = self._get_or_404(Service, service_id, "Услуга")
            in_orders = self.session.exec(select(OrderService.id).where(
                OrderService.service_id == service_id)).first()
            if in_orders:
                raise ConflictError(
                    "Нельзя удалить услугу, так как она есть в заказах.")
            self.session.delete(db_service)
        logger.info(f"Услуга ID {service_id} успешно удалена")

    # --- Клиенты и машины ---

    def create_client(self, client: Client) -> Client:
        with self.transaction():
            self.session.add(client)
        self.session.refresh(client)
        logger.info(f"Клиент создан с ID: {client.id}")
        return client

    def get_all_clients(self) -> Sequence[Client]:
        return self._read(select(Client).options(
            selectinload(Client.cars)).order_by(Client.name)).all()

    def get_client(self, client_id: int) -> Client:
        return self._get_or_404(Client, client_id, "Клиент")

    def update_client(self, client_id: int, data: Dict) -> Client:
        with self.transaction():
            db_client = self._get_or_404(Client, client_id, "Клиент")
            for key, value in data.items():
                setattr(db_client, key, value)
            db_client.updated_at = datetime.utcnow()
            self.session.add(db_client)
        self.session.refresh(db_client)
        logger.info(f"Данные клиента ID {client_id} успешно обновлены")
        return db_client

    def delete_client(self, client_id: int) -> None:
        with self.transaction():
            db_client = self._get_or_404(Client, client_id, "Клиент")
            has_orders = self.session.exec(
                select(Order.id).where(Order.client_id == client_id)).first()
            if has_orders:
                raise ConflictError(
                    "Нельзя удалить клиента, так как по нему есть заказы.")
            for link in self.session.exec(select(ClientCar).where(ClientCar.client_id == client_id)).all():
                self.session.delete(link)
            self.session.delete(db_client)
        logger.info(f"Клиент ID {client_id} удален")

    def get_client_cars(self, client_id: int) -> Sequence[Car]:
        return self._read(
            select(Car).join(ClientCar, Car.id == ClientCar.car_id)
            .where(ClientCar.client_id == client_id)
            .order_by(Car.created_at.desc(), Car.id.desc())
        ).all()

    def get_car_by_number(self, number: str) -> Optional[Car]:
        return self._read(select(Car).where(Car.number == number)).first()

    def add_car_to_client(self, client_id: int, car: Car) -> Car:
        """Находит машину по номеру (или создает) и привязывает к клиенту."""
        with self.transaction():
            self._get_or_404(Client, client_id, "Клиент")
            db_car = self.get_car_by_number(car.number)
            if db_car is None:
                self.session.add(car)
                self.session.flush()
                db_car = car
                logger.debug(f"Создана новая машина ID:{db_car.id} с номером {db_car.number}")
            if self.session.get(ClientCar, (client_id, db_car.id)):
                raise ConflictError(
                    f"Машина с номером {db_car.number} уже принадлежит этому клиенту")
            self.session.add(ClientCar(client_id=client_id, car_id=db_car.id))
        self.session.refresh(db_car)
        logger.info(f"Машина ID:{db_car.id} (номер: {db_car.number}) привязана к клиенту ID:{client_id}")
        return db_car

    def get_client_types(self) -> Sequence[str]:
        return self._read(select(Client.client_type).distinct().order_by(Client.client_type)).all()

    def get_clients_by_car(self, number: str) -> Sequence[Client]:
        return self._read(
            select(Client)
            .join(ClientCar, Client.id == ClientCar.client_id)
            .join(Car, Car.id == ClientCar.car_id)
            .where(Car.number == number)
            .options(selectinload(Client.cars))
            .order_by(Client.id)
        ).all()

    # --- Заказы ---

    def _insert_order_lines(self, order_id: int, lines: List[OrderServiceCreate]) -> None:
        for position, line in enumerate(lines, start=1):
            if self.session.get(Service, line.service_id) is None:
                raise NotFoundError(
                    f"Услуга с ID {line.service_id} (позиция {position}) не найдена")
            self.session.add(OrderService(
                order_id=order_id,
                service_id=line.service_id,
                service_description=line.service_description,
                wheel_position=line.wheel_position,
                price=line.price,
            ))
            self.session.flush()

    def create_order(self, order: Order, lines: List[OrderServiceCreate]) -> Order:
        """Шапка и все строки заказа пишутся одной транзакцией."""
        with self.transaction():
            self.session.add(order)
            self.session.flush()
            self._insert_order_lines(order.id, lines)
        self.session.refresh(order)
        logger.info(f"Заказ успешно создан с ID: {order.id}")
        return order

    def _orders_query(self):
        return select(Order).options(selectinload(Order.services)).order_by(
            Order.created_at.desc(), Order.id.desc())

    def get_all_orders(self) -> Sequence[Order]:
        return self._read(self._orders_query()).all()

    def get_order(self, order_id: int) -> Order:
        order = self._read(self._orders_query().where(Order.id == order_id)).first()
        if not order:
            raise NotFoundError(f"Заказ с ID {order_id} не найден")
        return order

    def get_orders_by_worker(self, worker_id: int) -> Sequence[Order]:
        return self._read(self._orders_query().where(Order.worker_id == worker_id)).all()

    def get_orders_by_worker_and_range(self, worker_id: int, start: datetime, end: datetime) -> Sequence[Order]:
        return self._read(self._orders_query().where(
            Order.worker_id == worker_id,
            Order.created_at >= start,
            Order.created_at < end,
        )).all()

    def update_order(self, order_id: int, data: Dict, lines: List[OrderServiceCreate]) -> Order:
        """Обновляет шапку и полностью заменяет строки заказа."""
        with self.transaction():
            db_order = self._get_or_404(Order, order_id, "Заказ")
            for key, value in data.items():
                setattr(db_order, key, value)
            db_order.updated_at = datetime.utcnow()
            self.session.add(db_order)
            db_order.services.clear()
            self.session.flush()
            self._insert_order_lines(order_id, lines)
        self.session.refresh(db_order)
        logger.info(f"Заказ ID {order_id} успешно обновлен")
        return db_order

    def update_order_status(self, order_id: int, status: OrderStatusEnum) -> Order:
        with self.transaction():
            db_order = self._get_or_404(Order, order_id, "Заказ")
            db_order.status = status
            db_order.updated_at = datetime.utcnow()
            self.session.add(db_order)
        self.session.refresh(db_order)
        return db_order

    def delete_order(self, order_id: int) -> None:
        with self.transaction():
            db_order = self._get_or_404(Order, order_id, "Заказ")
            # Штрафы/премии по заказу остаются, но теряют ссылку на него
            for model in (Penalty, Bonus):
                for entry in self.session.exec(select(model).where(model.order_id == order_id)).all():
                    entry.order_id = None
                    self.session.add(entry)
            self.session.delete(db_order)
        logger.info(f"Заказ ID {order_id} успешно удален")

    def get_order_statistics(self) -> Tuple[int, int, int, int, float]:
        return self._read(select(
            func.count(Order.id),
            func.coalesce(func.sum(Order.total_amount), 0),
            func.count(func.distinct(Order.worker_id)),
            func.count(func.distinct(Order.client_id)),
            func.coalesce(func.avg(Order.total_amount), 0),
        )).one()

    # --- Штрафы и премии ---

    def add_ledger_entry(self, entry):
        with self.transaction():
            self.session.add(entry)
        self.session.refresh(entry)
        logger.debug(f"Запись {type(entry).__name__} добавлена: {entry}")
        return entry

    def get_ledger_entries(self, model, worker_id: int):
        return self._read(select(model).where(model.worker_id == worker_id).order_by(
            model.created_at.desc(), model.id.desc())).all()

    def get_worker_statistic(self, worker_id: int, start: datetime, end: datetime) -> Tuple[int, int, int, int]:
        """Количество заказов, выручка, премии и штрафы за [start, end) одним запросом."""
        order_range = (Order.worker_id == worker_id,
                       Order.created_at >= start, Order.created_at < end)
        bonus_range = (Bonus.worker_id == worker_id,
                       Bonus.created_at >= start, Bonus.created_at < end)
        penalty_range = (Penalty.worker_id == worker_id,
                         Penalty.created_at >= start, Penalty.created_at < end)
        return self._read(select(
            select(func.count(Order.id)).where(*order_range).scalar_subquery(),
            select(func.coalesce(func.sum(Order.total_amount), 0)).where(*order_range).scalar_subquery(),
            select(func.coalesce(func.sum(Bonus.delta), 0)).where(*bonus_range).scalar_subquery(),
            select(func.coalesce(func.sum(Penalty.delta), 0)).where(*penalty_range).scalar_subquery(),
        )).one()

    # --- Материалы ---

    def create_material(self, material: Material) -> Material:
        with self.transaction():
            if self.get_material_by_name_and_type(material.name, material.type_ds):
                raise ConflictError(
                    f"Материал с названием '{material.name}' и типом ДС {material.type_ds} уже существует")
            self.session.add(material)
        self.session.refresh(material)
        logger.info(f"Материал успешно создан с ID: {material.id}")
        return material

    def get_all_materials(self) -> Sequence[Material]:
        return self._read(select(Material).order_by(Material.name)).all()

    def get_material(self, material_id: int) -> Material:
        return self._get_or_404(Material, material_id, "Материал")

    def get_material_by_name_and_type(self, name: str, type_ds: int) -> Optional[Material]:
        return self._read(select(Material).where(
            Material.name == name, Material.type_ds == type_ds)).first()

    def update_material(self, material_id: int, data: Dict) -> Material:
        with self.transaction():
            db_material = self._get_or_404(Material, material_id, "Материал")
            for key, value in data.items():
                setattr(db_material, key, value)
            db_material.updated_at = datetime.utcnow()
            self.session.add(db_material)
        self.session.refresh(db_material)
        return db_material

    def delete_material(self, material_id: int) -> None:
        with self.transaction():
            self.session.delete(self._get_or_404(Material, material_id, "Материал"))
        logger.info(f"Материал ID {material_id} успешно удален")

    def change_material_quantity(self, material_id: int, delta: int) -> Material:
        """Атомарно меняет остаток; списание ниже нуля не проходит."""
        statement = update(Material).where(Material.id == material_id)
        if delta < 0:
            statement = statement.where(Material.storage >= -delta)
        statement = statement.values(
            storage=Material.storage + delta, updated_at=datetime.utcnow()
        ).execution_options(synchronize_session=False)
        with self.transaction():
            result = self.session.execute(statement)
            if result.rowcount == 0:
                current = self._get_or_404(Material, material_id, "Материал")
                raise InsufficientInventoryError(
                    f"Недостаточно материала на складе: текущий остаток {current.storage}, "
                    f"требуется вычесть {-delta}")
        material = self.get_material(material_id)
        self.session.refresh(material)
        return material

    # --- Техкарты ---

    def create_material_card(self, card: MaterialCard) -> MaterialCard:
        with self.transaction():
            self.session.add(card)
        self.session.refresh(card)
        logger.info(f"Техкарта создана с ID: {card.id}")
        return card

    def get_all_material_cards(self) -> Sequence[MaterialCard]:
        return self._read(select(MaterialCard).order_by(MaterialCard.id)).all()

    def get_material_card(self, card_id: int) -> MaterialCard:
        return self._get_or_404(MaterialCard, card_id, "Техкарта")

    def update_material_card(self, card_id: int, data: Dict) -> MaterialCard:
        with self.transaction():
            db_card = self._get_or_404(MaterialCard, card_id, "Техкарта")
            for key, value in data.items():
                setattr(db_card, key, value)
            db_card.updated_at = datetime.utcnow()
            self.session.add(db_card)
        self.session.refresh(db_card)
        return db_card

    def delete_material_card(self, card_id: int) -> None:
        with self.transaction():
            db_card = self._get_or_404(MaterialCard, card_id, "Техкарта")
            used = self.session.exec(select(Service.id).where(
                Service.material_card_id == card_id)).first()
            if used:
                raise ConflictError("Техкарта привязана к услуге и не может быть удалена.")
            self.session.delete(db_card)

    # --- Склад расходников ---

    def get_storage(self) -> Storage:
        storage = self.session.get(Storage, config.STORAGE_ROW_ID)
        if storage is None:
            with self.transaction():
                storage = Storage(id=config.STORAGE_ROW_ID)
                self.session.add(storage)
            self.session.refresh(storage)
        return storage

    def add_delivery(self, delivery: Dict[str, int]) -> Storage:
        self.get_storage()
        values = {key: getattr(Storage, key) + delivery.get(key, 0) for key in MATERIAL_KEYS}
        values["updated_at"] = datetime.utcnow()
        with self.transaction():
            self.session.execute(
                update(Storage).where(Storage.id == config.STORAGE_ROW_ID)
                .values(values).execution_options(synchronize_session=False))
        storage = self.get_storage()
        self.session.refresh(storage)
        return storage

    def spell_material(self, card: MaterialCard) -> Storage:
        """Списывает рецепт техкарты одним условным UPDATE."""
        self.get_storage()
        recipe = {key: getattr(card, key) for key in MATERIAL_KEYS}
        values = {key: getattr(Storage, key) - amount for key, amount in recipe.items()}
        values["updated_at"] = datetime.utcnow()
        statement = (
            update(Storage)
            .where(Storage.id == config.STORAGE_ROW_ID,
                   *[getattr(Storage, key) >= amount for key, amount in recipe.items()])
            .values(values)
            .execution_options(synchronize_session=False)
        )
        with self.transaction():
            result = self.session.execute(statement)
            if result.rowcount == 0:
                raise InsufficientInventoryError(
                    f"Недостаточно расходников на складе для техкарты ID {card.id}")
        storage = self.get_storage()
        self.session.refresh(storage)
        return storage

    # --- Онлайн-запись ---

    def create_online_date(self, online_date: OnlineDate) -> OnlineDate:
        with self.transaction():
            self.session.add(online_date)
        self.session.refresh(online_date)
        logger.debug(f"Создана онлайн запись с ID: {online_date.id}")
        return online_date

    def get_online_dates(self) -> Sequence[OnlineDate]:
        return self._read(select(OnlineDate).order_by(OnlineDate.date)).all()

    def update_online_date(self, date_id: int, data: Dict) -> OnlineDate:
        with self.transaction():
            db_date = self._get_or_404(OnlineDate, date_id, "Онлайн запись")
            for key, value in data.items():
                setattr(db_date, key, value)
            db_date.updated_at = datetime.utcnow()
            self.session.add(db_date)
        self.session.refresh(db_date)
        return db_date
