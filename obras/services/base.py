from __future__ import annotations

import logging
import uuid

from django.db import transaction
from django.utils import timezone

from obras.domain.exceptions import NotFoundError

logger = logging.getLogger(__name__)


def ahora() -> str:
    return timezone.now().isoformat()


class RegistroColeccion:
    """
    CRUD común sobre una Coleccion: cargar todo, aplicar el cambio, guardar todo.
    Las mutaciones corren dentro de transaction.atomic con la fila del slot bloqueada.
    """

    prefijo_id = "reg"
    entidad = "Registro"
    campos_inmutables = ("id", "createdAt")

    def __init__(self, almacen, coleccion):
        self.almacen = almacen
        self.coleccion = coleccion

    def _nuevo_id(self) -> str:
        return f"{self.prefijo_id}-{uuid.uuid4().hex}"

    # ---------- lectura ----------
    def listar(self, **filtros) -> list[dict]:
        filtros = {k: v for k, v in filtros.items() if v is not None}
        return [
            r for r in self.coleccion.load_all()
            if all(r.get(campo) == valor for campo, valor in filtros.items())
        ]

    def buscar(self, registro_id) -> dict | None:
        return next((r for r in self.coleccion.load_all() if r.get("id") == registro_id), None)

    def obtener(self, registro_id) -> dict:
        registro = self.buscar(registro_id)
        if registro is None:
            raise NotFoundError(f"{self.entidad} '{registro_id}' no existe.")
        return registro

    # ---------- escritura ----------
    def _cargar_para_escribir(self) -> list[dict]:
        return self.coleccion.load_all(bloquear=True)

    def _indice(self, registros, registro_id) -> int:
        for i, r in enumerate(registros):
            if r.get("id") == registro_id:
                return i
        raise NotFoundError(f"{self.entidad} '{registro_id}' no existe.")

    def _insertar(self, registros, datos: dict) -> dict:
        momento = ahora()
        registro = {**datos, "id": self._nuevo_id(), "createdAt": momento, "updatedAt": momento}
        registros.append(registro)
        self.coleccion.save_all(registros)
        logger.info("Alta de %s: %s", self.entidad, registro["id"])
        return registro

    def _reemplazar(self, registros, indice: int, cambios: dict, momento: str | None = None) -> dict:
        cambios = {k: v for k, v in cambios.items() if k not in self.campos_inmutables}
        registro = {**registros[indice], **cambios, "updatedAt": momento or ahora()}
        registros[indice] = registro
        self.coleccion.save_all(registros)
        return registro

    @transaction.atomic
    def eliminar(self, registro_id) -> bool:
        """Idempotente: False si el id no existe."""
        registros = self._cargar_para_escribir()
        restantes = [r for r in registros if r.get("id") != registro_id]
        if len(restantes) == len(registros):
            return False
        self.coleccion.save_all(restantes)
        logger.info("Baja de %s: %s", self.entidad, registro_id)
        return True
