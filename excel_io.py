# excel_io.py
"""Обмен файлами Excel: разбор списка машин клиента и пустой шаблон."""

import io
import logging
from typing import List, Optional, Tuple

import pandas as pd

from errors import ValidationError

logger = logging.getLogger(__name__)

# Допустимые заголовки колонок (русские и английские)
COLUMN_ALIASES = {
    "number": ["номер", "number"],
    "model": ["модель", "model"],
    "year": ["год", "year"],
}
TEMPLATE_COLUMNS = ["Номер", "Модель", "Год"]


def _parse_year(val) -> Optional[int]:
    if val is None or pd.isna(val):
        return None
    try:
        return int(float(str(val).strip().replace(',', '.')))
    except (ValueError, TypeError):
        return None


def _clean_str(val) -> Optional[str]:
    if val is None or pd.isna(val):
        return None
    s = str(val).strip()
    return s or None


def read_cars(content: bytes) -> List[Tuple[str, Optional[str], Optional[int]]]:
    """Возвращает строки (номер, модель, год). Строки без номера пропускаются."""
    try:
        df = pd.read_excel(io.BytesIO(content), engine='calamine')
    except Exception as e:
        raise ValidationError(f"Не удалось прочитать файл Excel. Ошибка: {e}") from e

    column_map = {}
    for col in df.columns:
        header = str(col).strip().lower()
        for key, aliases in COLUMN_ALIASES.items():
            if key not in column_map and header in aliases:
                column_map[key] = col
    if "number" not in column_map:
        raise ValidationError("В файле нет колонки 'Номер' (или 'number')")

    rows = []
    for _, row in df.iterrows():
        number = _clean_str(row.get(column_map["number"]))
        if not number:
            continue
        model = _clean_str(row.get(column_map["model"])) if "model" in column_map else None
        year = _parse_year(row.get(column_map["year"])) if "year" in column_map else None
        rows.append((number.upper(), model, year))
    logger.debug(f"Из файла прочитано {len(rows)} машин")
    return rows


def build_cars_template() -> bytes:
    """Пустой шаблон для загрузки машин."""
    buffer = io.BytesIO()
    pd.DataFrame(columns=TEMPLATE_COLUMNS).to_excel(buffer, index=False, engine='openpyxl')
    return buffer.getvalue()
