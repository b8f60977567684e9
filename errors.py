# errors.py
"""Типизированные ошибки ядра. HTTP-слой переводит их в коды ответа."""


class ShopError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ShopError):
    """Не заполнено обязательное поле, неверная цена, неизвестное значение"""
    status_code = 400


class NotFoundError(ShopError):
    status_code = 404


class ConflictError(ShopError):
    """Нарушение уникальности: номер договора, связь клиент-машина, материал"""
    status_code = 409


class InsufficientInventoryError(ShopError):
    status_code = 400


class InfrastructureError(ShopError):
    """Сбой БД. Исходное исключение доступно через __cause__"""
    status_code = 500


class PermissionDeniedError(ShopError):
    status_code = 403
