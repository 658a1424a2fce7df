from __future__ import annotations

import logging

from django.db import transaction
from django.utils import timezone

from obras.domain.calculos import a_decimal, a_fecha, a_numero
from obras.domain.exceptions import ValidationError
from obras.models import Ambito, EstadoObra, Rol, TipoRecurso
from .base import RegistroColeccion
from .usuario_service import RegistroUsuarios

logger = logging.getLogger(__name__)

CAMPOS_EDITABLES = (
    "nombre", "ubicacion", "ambito", "fechaInicio", "fechaTermino",
    "tipoRecurso", "residenteId", "estado", "presupuestoTotal",
)


class RegistroObras(RegistroColeccion):
    prefijo_id = "obra"
    entidad = "Obra"

    def __init__(self, almacen):
        super().__init__(almacen, almacen.obras)
        self.usuarios = RegistroUsuarios(almacen)

    def _validar(self, datos: dict, resolver_residente: bool = True) -> dict:
        datos = dict(datos)
        datos["nombre"] = (datos.get("nombre") or "").strip()
        datos["ubicacion"] = (datos.get("ubicacion") or "").strip()

        if not datos["nombre"]:
            raise ValidationError("El nombre de la obra es obligatorio.", code="nombre_requerido")
        if datos.get("ambito") not in Ambito.values:
            raise ValidationError(f"Ámbito '{datos.get('ambito')}' no válido.", code="ambito_invalido")
        if datos.get("tipoRecurso") not in TipoRecurso.values:
            raise ValidationError(f"Tipo de recurso '{datos.get('tipoRecurso')}' no válido.", code="recurso_invalido")
        if datos.get("estado") not in EstadoObra.values:
            raise ValidationError(f"Estado de obra '{datos.get('estado')}' no válido.", code="estado_invalido")

        inicio = a_fecha(datos.get("fechaInicio"), "fechaInicio")
        termino = a_fecha(datos.get("fechaTermino"), "fechaTermino")
        if termino < inicio:
            raise ValidationError("La fecha de término no puede ser anterior a la de inicio.", code="fechas_invertidas")
        datos["fechaInicio"] = inicio.isoformat()
        datos["fechaTermino"] = termino.isoformat()

        presupuesto = a_decimal(datos.get("presupuestoTotal"), "presupuestoTotal")
        if presupuesto < 0:
            raise ValidationError("El presupuesto no puede ser negativo.", code="presupuesto_negativo")
        datos["presupuestoTotal"] = a_numero(presupuesto)

        if not resolver_residente:
            return datos

        # Referencia débil: se resuelve una vez para guardar el nombre del residente
        residente = self.usuarios.buscar(datos.get("residenteId"))
        if residente is None or residente.get("role") != Rol.RESIDENTE:
            raise ValidationError(
                f"El residente '{datos.get('residenteId')}' no existe o no tiene rol residente.",
                code="residente_invalido",
            )
        datos["residenteName"] = residente.get("name", "")
        return datos

    @transaction.atomic
    def crear(
        self,
        *,
        nombre,
        ubicacion,
        fecha_inicio,
        fecha_termino,
        residente_id,
        presupuesto_total,
        ambito=Ambito.PUBLICA,
        tipo_recurso=TipoRecurso.PROPIO,
    ) -> dict:
        datos = self._validar({
            "nombre": nombre,
            "ubicacion": ubicacion,
            "ambito": str(ambito),
            "fechaInicio": fecha_inicio,
            "fechaTermino": fecha_termino,
            "tipoRecurso": str(tipo_recurso),
            "residenteId": residente_id,
            "estado": EstadoObra.ACTIVA.value,
            "presupuestoTotal": presupuesto_total,
        })
        registros = self._cargar_para_escribir()
        return self._insertar(registros, datos)

    @transaction.atomic
    def actualizar(self, obra_id, **cambios) -> dict:
        desconocidos = set(cambios) - set(CAMPOS_EDITABLES)
        if desconocidos:
            raise ValidationError(f"Campos no editables: {sorted(desconocidos)}.", code="campo_no_editable")

        registros = self._cargar_para_escribir()
        indice = self._indice(registros, obra_id)
        datos = self._validar({**registros[indice], **cambios}, resolver_residente="residenteId" in cambios)
        return self._reemplazar(registros, indice, datos)

    def terminar(self, obra_id) -> dict:
        """Marca la obra como terminada hoy (o en su fecha de inicio si aún no empieza)."""
        inicio = a_fecha(self.obtener(obra_id).get("fechaInicio"), "fechaInicio")
        obra = self.actualizar(
            obra_id,
            estado=EstadoObra.TERMINADA.value,
            fechaTermino=max(timezone.localdate(), inicio).isoformat(),
        )
        logger.info("Obra %s terminada", obra_id)
        return obra

    def cancelar(self, obra_id) -> dict:
        obra = self.actualizar(obra_id, estado=EstadoObra.CANCELADA.value)
        logger.info("Obra %s cancelada", obra_id)
        return obra

    def listar_por_residente(self, residente_id) -> list[dict]:
        return self.listar(residenteId=residente_id)

    def activas(self) -> list[dict]:
        return self.listar(estado=EstadoObra.ACTIVA.value)

    def visibles_para(self, usuario) -> list[dict]:
        if usuario and usuario.get("role") == Rol.RESIDENTE:
            return self.listar_por_residente(usuario["id"])
        return self.listar()
