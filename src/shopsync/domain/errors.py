class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class NotFoundError(AppError):
    pass


class InsufficientStockError(AppError):
    pass


class DuplicateKeyError(ValidationError):
    """SKU or barcode already used by another item."""


class StoreError(AppError):
    pass
