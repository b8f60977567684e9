# main_api.py

# --- 1. Стандартная библиотека ---
from fastapi.responses import JSONResponse, Response
from fastapi.exceptions import RequestValidationError
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Annotated

# --- 2. Сторонние библиотеки ---
from fastapi import (
    FastAPI, Depends, HTTPException, UploadFile, File, Query
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
from sqlmodel import SQLModel, create_engine, Session

# --- 3. Локальные импорты ---
import config
import excel_io
from errors import ShopError
from main_models import (
    Bonus, Car, Client, ClientComparison, ClientRead, Contract, Material,
    MaterialCard, MaterialQuantities, OnlineDate, OrderCreate, OrderRead,
    OrderStatusEnum, Penalty, RoleEnum, SalarySchemaEnum, Service,
    ServiceFamily, Statistics, Storage, Worker, WorkerStatistics
)
from repository import Repository
from services import (
    AuthService, BookingDesk, ClientRegistry, ContractStore, Inventory,
    OrderEngine, ServiceCatalog, WorkerLedger
)

# --- Настройка логирования ---
logging.basicConfig(level=config.LOG_LEVEL,
                    format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# --- Настройка подключения к базе данных ---
engine = create_engine(config.DATABASE_URL)


def create_db_and_tables():
    logger.info("Создание таблиц в базе данных...")
    SQLModel.metadata.create_all(engine)
    logger.info("Таблицы успешно созданы (или уже существовали).")


# --- КОНФИГУРАЦИЯ БЕЗОПАСНОСТИ ---
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")

# --- Вспомогательные функции для аутентификации ---


def create_access_token(data: dict):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + \
        timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(
        to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)
    return encoded_jwt


async def get_current_user(token: Annotated[str, Depends(oauth2_scheme)]):
    credentials_exception = HTTPException(
        status_code=401,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, config.SECRET_KEY,
                             algorithms=[config.ALGORITHM])
    except JWTError as e:
        logger.error(f"Ошибка JWT при проверке токена: {e}")
        raise credentials_exception
    if not payload.get("sub") or not payload.get("role"):
        raise credentials_exception
    return payload


def require_manager(current_user: Annotated[dict, Depends(get_current_user)]):
    if current_user.get("role") != RoleEnum.MANAGER.value:
        raise HTTPException(status_code=403, detail="Доступно только менеджеру")
    return current_user


def require_worker(current_user: Annotated[dict, Depends(get_current_user)]):
    if current_user.get("role") != RoleEnum.WORKER.value:
        raise HTTPException(status_code=403, detail="Доступно только работнику")
    return current_user


# --- Основное приложение FastAPI ---
app = FastAPI(
    title="Shinomontaj API",
    description="API для управления шиномонтажом: заказы, клиенты, прайс, зарплата, склад."
)

# Форматируем ошибки валидации Pydantic в один удобочитаемый строковый message


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc: RequestValidationError):
    parts = []
    for err in exc.errors():
        loc = '.'.join(str(x) for x in err.get('loc', []))
        msg = err.get('msg', '')
        parts.append(f"{loc}: {msg}")
    detail = '; '.join(parts) if parts else str(exc)
    return JSONResponse(status_code=422, content={"detail": detail})


@app.exception_handler(ShopError)
async def shop_error_handler(request, exc: ShopError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

# --- НАСТРОЙКА CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Зависимость для сессии БД ---
def get_session():
    with Session(engine) as session:
        yield session


def get_repository(session: Session = Depends(get_session)) -> Repository:
    return Repository(session)


# --- Событие при старте приложения ---
@app.on_event("startup")
def on_startup():
    create_db_and_tables()


# --- Модели запросов ---
class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str
    role: RoleEnum = RoleEnum.WORKER


class ContractCreate(BaseModel):
    number: Optional[str] = None
    client_type: Optional[str] = None
    description: Optional[str] = None
    client_company_name: Optional[str] = None
    client_company_address: Optional[str] = None
    client_company_phone: Optional[str] = None
    client_company_email: Optional[str] = None
    client_company_inn: Optional[str] = None
    client_company_kpp: Optional[str] = None
    client_company_ogrn: Optional[str] = None


class ServiceItem(BaseModel):
    name: str
    price: int


class ContractServicesRequest(BaseModel):
    services: List[ServiceItem]


class ServiceCreate(BaseModel):
    name: Optional[str] = None
    price: int = 0
    contract_id: Optional[int] = None
    material_card_id: Optional[int] = None


class ClientCreate(BaseModel):
    name: Optional[str] = None
    client_type: Optional[str] = None
    owner_phone: Optional[str] = None
    manager_phone: Optional[str] = None
    contract_id: Optional[int] = None


class ClientUpdate(BaseModel):
    name: Optional[str] = None
    client_type: Optional[str] = None
    owner_phone: Optional[str] = None
    manager_phone: Optional[str] = None
    contract_id: Optional[int] = None


class CarCreate(BaseModel):
    number: str
    model: Optional[str] = None
    year: Optional[int] = None


class StatusUpdate(BaseModel):
    status: OrderStatusEnum


class WorkerCreate(BaseModel):
    name: str
    surname: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    salary_schema: Optional[SalarySchemaEnum] = None
    salary: int = 0
    has_car: bool = False
    password: Optional[str] = None


class WorkerUpdate(BaseModel):
    name: Optional[str] = None
    surname: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    salary_schema: Optional[SalarySchemaEnum] = None
    salary: Optional[int] = None
    has_car: Optional[bool] = None


class LedgerRequest(BaseModel):
    amount: int
    description: str = ""
    order_id: Optional[int] = None


class MaterialCreate(BaseModel):
    name: str
    type_ds: int = 1
    storage: int = 0


class MaterialUpdate(BaseModel):
    name: Optional[str] = None
    type_ds: Optional[int] = None
    storage: Optional[int] = None


class QuantityRequest(BaseModel):
    quantity: int


class MaterialCardUpdate(BaseModel):
    rs25: Optional[int] = None
    r19: Optional[int] = None
    r20: Optional[int] = None
    r25: Optional[int] = None
    r251: Optional[int] = None
    r13: Optional[int] = None
    r15: Optional[int] = None
    foot9: Optional[int] = None
    foot12: Optional[int] = None
    foot15: Optional[int] = None


class OnlineDateCreate(BaseModel):
    date: datetime
    name: Optional[str] = None
    phone: Optional[str] = None
    car_number: Optional[str] = None
    client_desc: Optional[str] = None


class OnlineDateUpdate(BaseModel):
    date: Optional[datetime] = None
    manager_desc: Optional[str] = None


class SalaryResponse(BaseModel):
    worker_id: int
    start: datetime
    salary: float


def _day_range(start: date, end: date):
    """Даты периода (включительно) в полуинтервал [start 00:00, end+1 00:00)."""
    return datetime.combine(start, time.min), datetime.combine(end + timedelta(days=1), time.min)


def _order_read(order) -> OrderRead:
    return OrderRead.model_validate(order)


# --- Аутентификация ---
@app.post("/token", summary="Получить токен доступа", tags=["Аутентификация"])
def login_for_access_token(form_data: Annotated[OAuth2PasswordRequestForm, Depends()], repo: Repository = Depends(get_repository)):
    auth = AuthService(repo, pwd_context)
    user = auth.authenticate(form_data.username, form_data.password)
    if not user:
        raise HTTPException(
            status_code=401,
            detail="Неверный email или пароль",
            headers={"WWW-Authenticate": "Bearer"},
        )
    access_token = create_access_token(auth.token_claims(user))
    return {"access_token": access_token, "token_type": "bearer"}


@app.post("/auth/register", summary="Регистрация пользователя", tags=["Аутентификация"])
def register(request: RegisterRequest, repo: Repository = Depends(get_repository)):
    user = AuthService(repo, pwd_context).register(
        request.name, request.email, request.password, request.role)
    return {"id": user.id, "name": user.name, "email": user.email, "role": user.role}


@app.post("/manager/users", summary="Создать пользователя (в т.ч. менеджера)", tags=["Аутентификация"])
def create_user(current_user: Annotated[dict, Depends(require_manager)], request: RegisterRequest, repo: Repository = Depends(get_repository)):
    user = AuthService(repo, pwd_context).register(
        request.name, request.email, request.password, request.role, allow_manager=True)
    return {"id": user.id, "name": user.name, "email": user.email, "role": user.role}


@app.get("/health", summary="Проверка работоспособности", tags=["Служебное"])
def health():
    return {"status": "ok"}


# --- Онлайн-запись (публично) ---
@app.post("/date", response_model=OnlineDate, summary="Онлайн-запись на шиномонтаж", tags=["Онлайн-запись"])
def create_online_date(request: OnlineDateCreate, repo: Repository = Depends(get_repository)):
    return BookingDesk(repo).create(
        request.date, request.name, request.phone, request.car_number, request.client_desc)


# --- Общие справочники (любая роль) ---
@app.get("/services", response_model=List[Service], summary="Получить все услуги", tags=["Справочники"])
def read_services_common(current_user: Annotated[dict, Depends(get_current_user)], repo: Repository = Depends(get_repository)):
    return ServiceCatalog(repo).get_all()


@app.get("/services/{contract_id}/prices", response_model=List[Service], summary="Прайс по договору", tags=["Справочники"])
def read_contract_prices(current_user: Annotated[dict, Depends(get_current_user)], contract_id: int, repo: Repository = Depends(get_repository)):
    return ServiceCatalog(repo).get_prices_by_contract(contract_id)


@app.get("/client-types", response_model=List[str], summary="Типы клиентов", tags=["Справочники"])
def read_client_types(current_user: Annotated[dict, Depends(get_current_user)], repo: Repository = Depends(get_repository)):
    return ClientRegistry(repo).get_client_types()


@app.get("/clients", response_model=List[ClientRead], summary="Список клиентов", tags=["Справочники"])
def read_clients_common(current_user: Annotated[dict, Depends(get_current_user)], repo: Repository = Depends(get_repository)):
    return ClientRegistry(repo).get_all()


# --- Кабинет работника ---
@app.get("/worker/orders", response_model=List[OrderRead], summary="Мои заказы", tags=["Работник"])
def read_my_orders(current_user: Annotated[dict, Depends(require_worker)], repo: Repository = Depends(get_repository)):
    worker = WorkerLedger(repo).get_by_user_id(current_user.get("user_id"))
    return [_order_read(o) for o in OrderEngine(repo).get_by_worker(worker.id)]


@app.post("/worker/orders", response_model=OrderRead, summary="Создать заказ", tags=["Работник"])
def create_my_order(current_user: Annotated[dict, Depends(require_worker)], order: OrderCreate, repo: Repository = Depends(get_repository)):
    orders = OrderEngine(repo)
    order_id = orders.create(order, current_user)
    return _order_read(orders.get(order_id))


@app.get("/worker/statistics", response_model=WorkerStatistics, summary="Моя статистика за период", tags=["Работник"])
def read_my_statistics(
    current_user: Annotated[dict, Depends(require_worker)],
    start: date = Query(...),
    end: date = Query(...),
    repo: Repository = Depends(get_repository)
):
    ledger = WorkerLedger(repo)
    worker = ledger.get_by_user_id(current_user.get("user_id"))
    return ledger.get_statistic(worker.id, *_day_range(start, end))


# --- Заказы (менеджер) ---
@app.get("/manager/orders", response_model=List[OrderRead], summary="Все заказы", tags=["Заказы"])
def read_orders(
    current_user: Annotated[dict, Depends(require_manager)],
    worker_id: Optional[int] = Query(None),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    repo: Repository = Depends(get_repository)
):
    orders = OrderEngine(repo)
    if worker_id and start and end:
        items = orders.get_by_worker_and_range(worker_id, *_day_range(start, end))
    elif worker_id:
        items = orders.get_by_worker(worker_id)
    else:
        items = orders.get_all()
    return [_order_read(o) for o in items]


@app.post("/manager/orders", response_model=OrderRead, summary="Создать заказ", tags=["Заказы"])
def create_order(current_user: Annotated[dict, Depends(require_manager)], order: OrderCreate, repo: Repository = Depends(get_repository)):
    orders = OrderEngine(repo)
    order_id = orders.create(order, current_user)
    return _order_read(orders.get(order_id))


@app.get("/manager/orders/{order_id}", response_model=OrderRead, summary="Получить заказ", tags=["Заказы"])
def read_order(current_user: Annotated[dict, Depends(require_manager)], order_id: int, repo: Repository = Depends(get_repository)):
    return _order_read(OrderEngine(repo).get(order_id))


@app.put("/manager/orders/{order_id}", response_model=OrderRead, summary="Обновить заказ целиком", tags=["Заказы"])
def update_order(current_user: Annotated[dict, Depends(require_manager)], order_id: int, order: OrderCreate, repo: Repository = Depends(get_repository)):
    return _order_read(OrderEngine(repo).update(order_id, order))


@app.patch("/manager/orders/{order_id}/status", response_model=OrderRead, summary="Сменить статус заказа", tags=["Заказы"])
def update_order_status(current_user: Annotated[dict, Depends(require_manager)], order_id: int, request: StatusUpdate, repo: Repository = Depends(get_repository)):
    return _order_read(OrderEngine(repo).update_status(order_id, request.status))


@app.delete("/manager/orders/{order_id}", status_code=204, summary="Удалить заказ", tags=["Заказы"])
def delete_order(current_user: Annotated[dict, Depends(require_manager)], order_id: int, repo: Repository = Depends(get_repository)):
    OrderEngine(repo).delete(order_id)
    return None


@app.get("/manager/statistics", response_model=Statistics, summary="Общая статистика по заказам", tags=["Заказы"])
def read_statistics(current_user: Annotated[dict, Depends(require_manager)], repo: Repository = Depends(get_repository)):
    return OrderEngine(repo).get_statistics()


# --- Клиенты и машины ---
@app.post("/manager/clients", response_model=ClientRead, summary="Добавить клиента", tags=["Клиенты"])
def create_client(current_user: Annotated[dict, Depends(require_manager)], request: ClientCreate, repo: Repository = Depends(get_repository)):
    return ClientRegistry(repo).create(Client(**request.model_dump()))


@app.get("/manager/clients", response_model=List[ClientRead], summary="Список клиентов", tags=["Клиенты"])
def read_clients(current_user: Annotated[dict, Depends(require_manager)], repo: Repository = Depends(get_repository)):
    return ClientRegistry(repo).get_all()


@app.get("/manager/clients/vehicles/template", summary="Шаблон Excel для загрузки машин", tags=["Клиенты"])
def download_cars_template(current_user: Annotated[dict, Depends(require_manager)]):
    return Response(
        content=excel_io.build_cars_template(),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": "attachment; filename=cars_template.xlsx"},
    )


@app.get("/manager/clients/whose/{car_number}", response_model=List[ClientRead], summary="Чья машина", tags=["Клиенты"])
def read_car_owners(current_user: Annotated[dict, Depends(require_manager)], car_number: str, repo: Repository = Depends(get_repository)):
    return ClientRegistry(repo).whose_car(car_number)


@app.get("/manager/clients/compare/{car_number}", response_model=List[ClientComparison], summary="Сравнить прайсы клиентов машины", tags=["Клиенты"])
def compare_clients_for_car(current_user: Annotated[dict, Depends(require_manager)], car_number: str, repo: Repository = Depends(get_repository)):
    return ClientRegistry(repo).compare_for_car(car_number)


@app.get("/manager/clients/{client_id}", response_model=ClientRead, summary="Получить клиента", tags=["Клиенты"])
def read_client(current_user: Annotated[dict, Depends(require_manager)], client_id: int, repo: Repository = Depends(get_repository)):
    return ClientRegistry(repo).get(client_id)


@app.patch("/manager/clients/{client_id}", response_model=ClientRead, summary="Обновить клиента", tags=["Клиенты"])
def update_client(current_user: Annotated[dict, Depends(require_manager)], client_id: int, client_update: ClientUpdate, repo: Repository = Depends(get_repository)):
    return ClientRegistry(repo).update(client_id, client_update.model_dump(exclude_unset=True))


@app.delete("/manager/clients/{client_id}", status_code=204, summary="Удалить клиента", tags=["Клиенты"])
def delete_client(current_user: Annotated[dict, Depends(require_manager)], client_id: int, repo: Repository = Depends(get_repository)):
    ClientRegistry(repo).delete(client_id)
    return None


@app.get("/manager/clients/{client_id}/vehicles", response_model=List[Car], summary="Машины клиента", tags=["Клиенты"])
def read_client_cars(current_user: Annotated[dict, Depends(require_manager)], client_id: int, repo: Repository = Depends(get_repository)):
    return ClientRegistry(repo).get_cars(client_id)


@app.post("/manager/clients/{client_id}/vehicles", response_model=Car, summary="Привязать машину к клиенту", tags=["Клиенты"])
def add_client_car(current_user: Annotated[dict, Depends(require_manager)], client_id: int, request: CarCreate, repo: Repository = Depends(get_repository)):
    return ClientRegistry(repo).add_car(client_id, request.number, request.model, request.year)


@app.post("/manager/clients/{client_id}/vehicles/upload", summary="Загрузить машины клиента из Excel", tags=["Клиенты"])
def upload_client_cars(current_user: Annotated[dict, Depends(require_manager)], client_id: int, file: UploadFile = File(...), repo: Repository = Depends(get_repository)):
    rows = excel_io.read_cars(file.file.read())
    return ClientRegistry(repo).upload_cars(client_id, rows)


# --- Онлайн-запись (менеджер) ---
@app.get("/manager/online-dates", response_model=List[OnlineDate], summary="Список онлайн-записей", tags=["Онлайн-запись"])
def read_online_dates(current_user: Annotated[dict, Depends(require_manager)], repo: Repository = Depends(get_repository)):
    return BookingDesk(repo).get_all()


@app.patch("/manager/online-dates/{date_id}", response_model=OnlineDate, summary="Обновить онлайн-запись", tags=["Онлайн-запись"])
def update_online_date(current_user: Annotated[dict, Depends(require_manager)], date_id: int, request: OnlineDateUpdate, repo: Repository = Depends(get_repository)):
    return BookingDesk(repo).update(date_id, request.model_dump(exclude_unset=True))


# --- Работники, штрафы, премии, зарплата ---
@app.post("/manager/workers", response_model=Worker, summary="Добавить нового работника", tags=["Работники"])
def create_worker(current_user: Annotated[dict, Depends(require_manager)], request: WorkerCreate, repo: Repository = Depends(get_repository)):
    worker = Worker(**request.model_dump(exclude={"password"}))
    return WorkerLedger(repo, pwd_context).create(worker, request.password)


@app.get("/manager/workers", response_model=List[Worker], summary="Получить список всех работников", tags=["Работники"])
def read_workers(current_user: Annotated[dict, Depends(require_manager)], repo: Repository = Depends(get_repository)):
    return WorkerLedger(repo).get_all()


@app.get("/manager/workers/{worker_id}", response_model=Worker, summary="Получить работника", tags=["Работники"])
def read_worker(current_user: Annotated[dict, Depends(require_manager)], worker_id: int, repo: Repository = Depends(get_repository)):
    return WorkerLedger(repo).get(worker_id)


@app.patch("/manager/workers/{worker_id}", response_model=Worker, summary="Обновить работника", tags=["Работники"])
def update_worker(current_user: Annotated[dict, Depends(require_manager)], worker_id: int, worker_update: WorkerUpdate, repo: Repository = Depends(get_repository)):
    return WorkerLedger(repo).update(worker_id, worker_update.model_dump(exclude_unset=True))


@app.delete("/manager/workers/{worker_id}", status_code=204, summary="Удалить работника", tags=["Работники"])
def delete_worker(current_user: Annotated[dict, Depends(require_manager)], worker_id: int, repo: Repository = Depends(get_repository)):
    WorkerLedger(repo).delete(worker_id)
    return None


@app.post("/manager/workers/{worker_id}/penalties", response_model=Penalty, summary="Оштрафовать работника", tags=["Работники"])
def add_penalty(current_user: Annotated[dict, Depends(require_manager)], worker_id: int, request: LedgerRequest, repo: Repository = Depends(get_repository)):
    return WorkerLedger(repo).add_penalty(worker_id, request.amount, request.description, request.order_id)


@app.get("/manager/workers/{worker_id}/penalties", response_model=List[Penalty], summary="Штрафы работника", tags=["Работники"])
def read_penalties(current_user: Annotated[dict, Depends(require_manager)], worker_id: int, repo: Repository = Depends(get_repository)):
    return WorkerLedger(repo).get_penalties(worker_id)


@app.post("/manager/workers/{worker_id}/bonuses", response_model=Bonus, summary="Премировать работника", tags=["Работники"])
def add_bonus(current_user: Annotated[dict, Depends(require_manager)], worker_id: int, request: LedgerRequest, repo: Repository = Depends(get_repository)):
    return WorkerLedger(repo).add_bonus(worker_id, request.amount, request.description, request.order_id)


@app.get("/manager/workers/{worker_id}/bonuses", response_model=List[Bonus], summary="Премии работника", tags=["Работники"])
def read_bonuses(current_user: Annotated[dict, Depends(require_manager)], worker_id: int, repo: Repository = Depends(get_repository)):
    return WorkerLedger(repo).get_bonuses(worker_id)


@app.get("/manager/workers/{worker_id}/statistics", response_model=WorkerStatistics, summary="Статистика работника за период", tags=["Работники"])
def read_worker_statistics(
    current_user: Annotated[dict, Depends(require_manager)],
    worker_id: int,
    start: date = Query(...),
    end: date = Query(...),
    repo: Repository = Depends(get_repository)
):
    return WorkerLedger(repo).get_statistic(worker_id, *_day_range(start, end))


@app.get("/manager/workers/{worker_id}/salary", response_model=SalaryResponse, summary="Зарплата работника за сутки", tags=["Работники"])
def read_worker_salary(current_user: Annotated[dict, Depends(require_manager)], worker_id: int, start: datetime = Query(...), repo: Repository = Depends(get_repository)):
    salary = WorkerLedger(repo).salary(worker_id, start)
    return SalaryResponse(worker_id=worker_id, start=start, salary=salary)


# --- Услуги (прайс) ---
@app.post("/manager/services", response_model=Service, summary="Добавить услугу в прайс", tags=["Услуги"])
def create_service(current_user: Annotated[dict, Depends(require_manager)], request: ServiceCreate, repo: Repository = Depends(get_repository)):
    catalog = ServiceCatalog(repo)
    service_id = catalog.create(request.name, request.price, request.contract_id, request.material_card_id)
    return catalog.get(service_id)


@app.get("/manager/services", response_model=List[Service], summary="Все услуги", tags=["Услуги"])
def read_services(current_user: Annotated[dict, Depends(require_manager)], repo: Repository = Depends(get_repository)):
    return ServiceCatalog(repo).get_all()


@app.get("/manager/services/with-prices", response_model=List[ServiceFamily], summary="Услуги с ценами по всем договорам", tags=["Услуги"])
def read_services_with_prices(current_user: Annotated[dict, Depends(require_manager)], repo: Repository = Depends(get_repository)):
    return ServiceCatalog(repo).get_all_with_prices()


@app.get("/manager/services/{service_id}", response_model=Service, summary="Получить услугу", tags=["Услуги"])
def read_service(current_user: Annotated[dict, Depends(require_manager)], service_id: int, repo: Repository = Depends(get_repository)):
    return ServiceCatalog(repo).get(service_id)


@app.put("/manager/services/{service_id}", response_model=Service, summary="Обновить услугу", tags=["Услуги"])
def update_service(current_user: Annotated[dict, Depends(require_manager)], service_id: int, request: ServiceCreate, repo: Repository = Depends(get_repository)):
    return ServiceCatalog(repo).update(
        service_id, request.name, request.price, request.contract_id, request.material_card_id)


@app.delete("/manager/services/{service_id}", status_code=204, summary="Удалить услугу", tags=["Услуги"])
def delete_service(current_user: Annotated[dict, Depends(require_manager)], service_id: int, repo: Repository = Depends(get_repository)):
    ServiceCatalog(repo).delete(service_id)
    return None


# --- Договоры ---
@app.post("/manager/contracts", response_model=Contract, summary="Создать договор", tags=["Договоры"])
def create_contract(current_user: Annotated[dict, Depends(require_manager)], request: ContractCreate, repo: Repository = Depends(get_repository)):
    return ContractStore(repo).create(Contract(**request.model_dump()))


@app.get("/manager/contracts", response_model=List[Contract], summary="Список договоров", tags=["Договоры"])
def read_contracts(current_user: Annotated[dict, Depends(require_manager)], repo: Repository = Depends(get_repository)):
    return ContractStore(repo).get_all()


@app.get("/manager/contracts/{contract_id}", response_model=Contract, summary="Получить договор", tags=["Договоры"])
def read_contract(current_user: Annotated[dict, Depends(require_manager)], contract_id: int, repo: Repository = Depends(get_repository)):
    return ContractStore(repo).get(contract_id)


@app.put("/manager/contracts/{contract_id}", summary="Договор нельзя изменить", tags=["Договоры"])
@app.patch("/manager/contracts/{contract_id}", summary="Договор нельзя изменить", tags=["Договоры"])
@app.delete("/manager/contracts/{contract_id}", summary="Договор нельзя удалить", tags=["Договоры"])
def modify_contract(current_user: Annotated[dict, Depends(require_manager)], contract_id: int):
    raise HTTPException(status_code=405, detail="Договор после создания не изменяется и не удаляется")


@app.post("/manager/contracts/{contract_id}/services", response_model=List[Service], summary="Добавить услуги в прайс договора", tags=["Договоры"])
def add_contract_services(current_user: Annotated[dict, Depends(require_manager)], contract_id: int, request: ContractServicesRequest, repo: Repository = Depends(get_repository)):
    return ContractStore(repo).add_services(contract_id, [(s.name, s.price) for s in request.services])


# --- Материалы ---
@app.post("/manager/materials", response_model=Material, summary="Добавить материал", tags=["Материалы"])
def create_material(current_user: Annotated[dict, Depends(require_manager)], request: MaterialCreate, repo: Repository = Depends(get_repository)):
    return Inventory(repo).create(Material(**request.model_dump()))


@app.get("/manager/materials", response_model=List[Material], summary="Список материалов", tags=["Материалы"])
def read_materials(current_user: Annotated[dict, Depends(require_manager)], name: Optional[str] = Query(None), type_ds: Optional[int] = Query(None), repo: Repository = Depends(get_repository)):
    inventory = Inventory(repo)
    if name is not None and type_ds is not None:
        return [inventory.get_by_name_and_type(name, type_ds)]
    return inventory.get_all()


@app.get("/manager/materials/{material_id}", response_model=Material, summary="Получить материал", tags=["Материалы"])
def read_material(current_user: Annotated[dict, Depends(require_manager)], material_id: int, repo: Repository = Depends(get_repository)):
    return Inventory(repo).get(material_id)


@app.patch("/manager/materials/{material_id}", response_model=Material, summary="Обновить материал", tags=["Материалы"])
def update_material(current_user: Annotated[dict, Depends(require_manager)], material_id: int, material_update: MaterialUpdate, repo: Repository = Depends(get_repository)):
    return Inventory(repo).update(material_id, material_update.model_dump(exclude_unset=True))


@app.delete("/manager/materials/{material_id}", status_code=204, summary="Удалить материал", tags=["Материалы"])
def delete_material(current_user: Annotated[dict, Depends(require_manager)], material_id: int, repo: Repository = Depends(get_repository)):
    Inventory(repo).delete(material_id)
    return None


@app.post("/manager/materials/{material_id}/add", response_model=Material, summary="Добавить количество материала", tags=["Материалы"])
def add_material_quantity(current_user: Annotated[dict, Depends(require_manager)], material_id: int, request: QuantityRequest, repo: Repository = Depends(get_repository)):
    return Inventory(repo).add_quantity(material_id, request.quantity)


@app.post("/manager/materials/{material_id}/subtract", response_model=Material, summary="Списать количество материала", tags=["Материалы"])
def subtract_material_quantity(current_user: Annotated[dict, Depends(require_manager)], material_id: int, request: QuantityRequest, repo: Repository = Depends(get_repository)):
    return Inventory(repo).subtract_quantity(material_id, request.quantity)


# --- Техкарты и склад расходников ---
@app.post("/manager/material-cards", response_model=MaterialCard, summary="Создать техкарту", tags=["Склад"])
def create_material_card(current_user: Annotated[dict, Depends(require_manager)], request: MaterialQuantities, repo: Repository = Depends(get_repository)):
    return Inventory(repo).create_card(MaterialCard(**request.model_dump()))


@app.get("/manager/material-cards", response_model=List[MaterialCard], summary="Список техкарт", tags=["Склад"])
def read_material_cards(current_user: Annotated[dict, Depends(require_manager)], repo: Repository = Depends(get_repository)):
    return Inventory(repo).get_all_cards()


@app.get("/manager/material-cards/{card_id}", response_model=MaterialCard, summary="Получить техкарту", tags=["Склад"])
def read_material_card(current_user: Annotated[dict, Depends(require_manager)], card_id: int, repo: Repository = Depends(get_repository)):
    return Inventory(repo).get_card(card_id)


@app.patch("/manager/material-cards/{card_id}", response_model=MaterialCard, summary="Обновить техкарту", tags=["Склад"])
def update_material_card(current_user: Annotated[dict, Depends(require_manager)], card_id: int, card_update: MaterialCardUpdate, repo: Repository = Depends(get_repository)):
    return Inventory(repo).update_card(card_id, card_update.model_dump(exclude_unset=True))


@app.delete("/manager/material-cards/{card_id}", status_code=204, summary="Удалить техкарту", tags=["Склад"])
def delete_material_card(current_user: Annotated[dict, Depends(require_manager)], card_id: int, repo: Repository = Depends(get_repository)):
    Inventory(repo).delete_card(card_id)
    return None


@app.get("/manager/storage", response_model=Storage, summary="Остатки расходников", tags=["Склад"])
def read_storage(current_user: Annotated[dict, Depends(require_manager)], repo: Repository = Depends(get_repository)):
    return Inventory(repo).get_storage()


@app.post("/manager/storage/delivery", response_model=Storage, summary="Принять поставку расходников", tags=["Склад"])
def add_storage_delivery(current_user: Annotated[dict, Depends(require_manager)], delivery: Dict[str, int], repo: Repository = Depends(get_repository)):
    return Inventory(repo).add_delivery(delivery)


@app.post("/manager/storage/spell/{card_id}", response_model=Storage, summary="Списать расходники по техкарте", tags=["Склад"])
def spell_storage(current_user: Annotated[dict, Depends(require_manager)], card_id: int, repo: Repository = Depends(get_repository)):
    return Inventory(repo).spell_material(card_id)
