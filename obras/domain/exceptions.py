from django.core.exceptions import ValidationError


class DomainError(Exception):
    """Error de reglas de negocio."""
    pass


class NotFoundError(DomainError):
    """La operación apunta a un id que no existe en la colección."""
    pass


class StorageError(DomainError):
    """Colección persistida ilegible o corrupta."""
    pass


class TransicionInvalidaError(ValidationError):
    """La nómina no está en el estado de origen que exige la transición."""
    pass
