from __future__ import annotations

import json
import logging

from obras.domain.exceptions import StorageError
from obras.models import ColeccionPersistida

logger = logging.getLogger(__name__)

PREFIJO_DEFAULT = "sismich"


def _decodificar(nombre: str, contenido: str):
    try:
        return json.loads(contenido)
    except json.JSONDecodeError as exc:
        logger.error("Colección '%s' corrupta: %s", nombre, exc)
        raise StorageError(f"La colección '{nombre}' no se puede leer: {exc}") from exc


def _codificar(nombre: str, datos) -> str:
    try:
        return json.dumps(datos, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise StorageError(f"La colección '{nombre}' no se puede serializar: {exc}") from exc


class Coleccion:
    """
    Lista de registros guardada completa en un slot con nombre.
    save_all sobrescribe todo; no hay merge parcial.
    """

    def __init__(self, nombre: str):
        self.nombre = nombre

    def __repr__(self):
        return f"Coleccion({self.nombre!r})"

    def _fila(self, bloquear: bool = False):
        qs = ColeccionPersistida.objects.filter(nombre=self.nombre)
        if bloquear:
            # Solo válido dentro de transaction.atomic()
            qs = qs.select_for_update()
        return qs.first()

    def load_all(self, bloquear: bool = False) -> list[dict]:
        fila = self._fila(bloquear)
        if fila is None or not fila.contenido:
            return []

        datos = _decodificar(self.nombre, fila.contenido)
        if not isinstance(datos, list):
            logger.error("Colección '%s' no contiene una lista (%s)", self.nombre, type(datos).__name__)
            raise StorageError(f"La colección '{self.nombre}' no contiene una lista de registros.")
        return datos

    def save_all(self, registros) -> None:
        contenido = _codificar(self.nombre, list(registros))
        ColeccionPersistida.objects.update_or_create(
            nombre=self.nombre,
            defaults={"contenido": contenido},
        )


class RegistroSesion:
    """Un único registro {"user": ..., "timestamp": ...} en su propio slot."""

    def __init__(self, nombre: str):
        self.nombre = nombre

    def load(self) -> dict | None:
        fila = ColeccionPersistida.objects.filter(nombre=self.nombre).first()
        if fila is None or not fila.contenido:
            return None

        datos = _decodificar(self.nombre, fila.contenido)
        if not isinstance(datos, dict):
            raise StorageError(f"El registro de sesión '{self.nombre}' no es un objeto.")
        return datos

    def save(self, registro: dict) -> None:
        ColeccionPersistida.objects.update_or_create(
            nombre=self.nombre,
            defaults={"contenido": _codificar(self.nombre, registro)},
        )

    def clear(self) -> None:
        ColeccionPersistida.objects.filter(nombre=self.nombre).delete()


class SesionDjango:
    """Misma interfaz que RegistroSesion, pero sobre request.session (una por navegador)."""

    CLAVE = "obras_auth"

    def __init__(self, session):
        self.session = session

    def load(self) -> dict | None:
        return self.session.get(self.CLAVE)

    def save(self, registro: dict) -> None:
        self.session[self.CLAVE] = registro

    def clear(self) -> None:
        self.session.pop(self.CLAVE, None)


class AlmacenLocal:
    """
    Repositorio explícito: se construye una vez por proceso/petición
    y se pasa a cada registro. El prefijo aísla copias independientes.
    """

    def __init__(self, prefijo: str = PREFIJO_DEFAULT, sesion=None):
        self.prefijo = prefijo
        self.usuarios = Coleccion(f"{prefijo}_users")
        self.obras = Coleccion(f"{prefijo}_obras")
        self.nominas = Coleccion(f"{prefijo}_nominas")
        self.documentos = Coleccion(f"{prefijo}_documentos")
        self.sesion = sesion if sesion is not None else RegistroSesion(f"{prefijo}_auth")
