# config.py
import os
from dotenv import load_dotenv

# Загружаем переменные из .env файла
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise ValueError("Необходимо установить переменную окружения DATABASE_URL")

SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY or SECRET_KEY == "change-me":
    raise ValueError("Критическая ошибка: SECRET_KEY не установлен или используется значение по умолчанию.")

ALGORITHM = "HS256"
try:
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24)))
except ValueError:
    ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24  # 1 день

# Загружаем CORS origins и преобразуем в список
cors_origins_str = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
CORS_ORIGINS = [origin.strip() for origin in cors_origins_str.split(',')]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Номер строки склада материалов (склад в системе один)
STORAGE_ROW_ID = 1
