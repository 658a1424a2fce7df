from __future__ import annotations

import logging

from django.core.exceptions import PermissionDenied
from django.db import transaction
from django.utils import timezone

from obras.domain.calculos import (
    a_fecha,
    a_numero,
    calcular_empleados,
    calcular_total_nomina,
)
from obras.domain.exceptions import ValidationError
from obras.domain.rules import check_transicion, require_owner_or_admin, require_role
from obras.models import EstadoNomina, EstadoObra, Rol
from .base import RegistroColeccion, ahora
from .finanzas_service import mano_obra_comprometida
from .obra_service import RegistroObras
from .usuario_service import RegistroUsuarios

logger = logging.getLogger(__name__)


def _semana(semana_del, semana_al) -> tuple[str, str]:
    inicio = a_fecha(semana_del, "semanaDel")
    fin = a_fecha(semana_al, "semanaAl")
    if fin < inicio:
        raise ValidationError("La semana termina antes de empezar.", code="semana_invertida")
    return inicio.isoformat(), fin.isoformat()


class LibroNominas(RegistroColeccion):
    """
    Nóminas semanales por obra.

    No hay actualización genérica: los datos se editan solo mientras la
    nómina está pendiente (editar_empleados / editar_datos) y el estado
    avanza únicamente con validar -> autorizar -> pagar.
    """

    prefijo_id = "nomina"
    entidad = "Nómina"

    def __init__(self, almacen):
        super().__init__(almacen, almacen.nominas)
        self.obras = RegistroObras(almacen)
        self.usuarios = RegistroUsuarios(almacen)

    # ==========================================
    # Alta
    # ==========================================
    @transaction.atomic
    def crear(
        self,
        *,
        usuario,
        obra_id,
        semana_del,
        semana_al,
        empleados,
        fecha_elaboracion=None,
        residente_id=None,
    ) -> dict:
        require_role(usuario, Rol.RESIDENTE, Rol.ADMIN)

        obra = self.obras.obtener(obra_id)
        if obra.get("estado") != EstadoObra.ACTIVA:
            raise ValidationError(
                f"La obra '{obra.get('nombre')}' está {obra.get('estado')}; no admite nóminas nuevas.",
                code="obra_no_activa",
            )

        if usuario["role"] == Rol.RESIDENTE:
            if residente_id and residente_id != usuario["id"]:
                raise PermissionDenied("Un residente solo puede elaborar nóminas a su nombre.")
            if obra.get("residenteId") != usuario["id"]:
                raise PermissionDenied("La obra no está asignada a este residente.")
            residente_id = usuario["id"]
        else:
            residente_id = residente_id or obra.get("residenteId")

        residente = self.usuarios.buscar(residente_id)
        if residente is None or residente.get("role") != Rol.RESIDENTE:
            raise ValidationError(f"El residente '{residente_id}' no existe.", code="residente_invalido")

        semana_del, semana_al = _semana(semana_del, semana_al)
        fecha_elaboracion = a_fecha(fecha_elaboracion or timezone.localdate(), "fechaElaboracion")
        empleados = calcular_empleados(empleados)

        registros = self._cargar_para_escribir()
        nomina = self._insertar(registros, {
            "obraId": obra["id"],
            "obraName": obra.get("nombre", ""),
            "semanaDel": semana_del,
            "semanaAl": semana_al,
            "fechaElaboracion": fecha_elaboracion.isoformat(),
            "empleados": empleados,
            "totalNomina": a_numero(calcular_total_nomina(empleados)),
            "estado": EstadoNomina.PENDIENTE.value,
            "residenteId": residente["id"],
            "residenteName": residente.get("name", ""),
            "validadaAt": None,
            "autorizadaAt": None,
            "pagadaAt": None,
        })
        return nomina

    # ==========================================
    # Edición (solo PENDIENTE)
    # ==========================================
    def _indice_editable(self, registros, nomina_id, usuario) -> int:
        indice = self._indice(registros, nomina_id)
        nomina = registros[indice]
        require_owner_or_admin(usuario, nomina.get("residenteId"))
        if nomina.get("estado") != EstadoNomina.PENDIENTE:
            raise ValidationError(
                f"Solo se puede editar una nómina pendiente (estado actual: {nomina.get('estado')}).",
                code="nomina_no_editable",
            )
        return indice

    @transaction.atomic
    def editar_empleados(self, *, usuario, nomina_id, empleados) -> dict:
        empleados = calcular_empleados(empleados)
        registros = self._cargar_para_escribir()
        indice = self._indice_editable(registros, nomina_id, usuario)
        return self._reemplazar(registros, indice, {
            "empleados": empleados,
            "totalNomina": a_numero(calcular_total_nomina(empleados)),
        })

    @transaction.atomic
    def editar_datos(self, *, usuario, nomina_id, semana_del=None, semana_al=None, fecha_elaboracion=None) -> dict:
        registros = self._cargar_para_escribir()
        indice = self._indice_editable(registros, nomina_id, usuario)
        actual = registros[indice]

        semana_del, semana_al = _semana(semana_del or actual["semanaDel"], semana_al or actual["semanaAl"])
        cambios = {"semanaDel": semana_del, "semanaAl": semana_al}
        if fecha_elaboracion:
            cambios["fechaElaboracion"] = a_fecha(fecha_elaboracion, "fechaElaboracion").isoformat()
        return self._reemplazar(registros, indice, cambios)

    # ==========================================
    # Flujo: pendiente -> validada -> autorizada -> pagada
    # ==========================================
    @transaction.atomic
    def _transicionar(self, usuario, nomina_id, destino: EstadoNomina) -> dict:
        registros = self._cargar_para_escribir()
        indice = self._indice(registros, nomina_id)
        campo_fecha = check_transicion(registros[indice], destino, usuario)

        momento = ahora()
        nomina = self._reemplazar(
            registros,
            indice,
            {"estado": destino.value, campo_fecha: momento},
            momento=momento,
        )
        logger.info("Nómina %s -> %s por %s", nomina_id, destino.value, usuario.get("username"))
        return nomina

    def validar(self, usuario, nomina_id) -> dict:
        return self._transicionar(usuario, nomina_id, EstadoNomina.VALIDADA)

    def autorizar(self, usuario, nomina_id) -> dict:
        return self._transicionar(usuario, nomina_id, EstadoNomina.AUTORIZADA)

    def pagar(self, usuario, nomina_id) -> dict:
        return self._transicionar(usuario, nomina_id, EstadoNomina.PAGADA)

    # ==========================================
    # Baja
    # ==========================================
    @transaction.atomic
    def eliminar(self, nomina_id, *, usuario) -> bool:
        """False si no existe; solo se eliminan nóminas pendientes."""
        registros = self._cargar_para_escribir()
        if not any(r.get("id") == nomina_id for r in registros):
            return False

        self._indice_editable(registros, nomina_id, usuario)
        self.coleccion.save_all([r for r in registros if r.get("id") != nomina_id])
        logger.info("Nómina %s eliminada por %s", nomina_id, usuario.get("username"))
        return True

    # ==========================================
    # Consultas
    # ==========================================
    def listar(self, obra_id=None, residente_id=None, estado=None) -> list[dict]:
        return super().listar(obraId=obra_id, residenteId=residente_id, estado=estado)

    def visibles_para(self, usuario, busqueda: str = "") -> list[dict]:
        """
        admin: todas; residente: las suyas; contadora: autorizadas y pagadas.
        `busqueda` filtra por nombre de obra o de residente.
        """
        rol = usuario.get("role")
        if rol == Rol.ADMIN:
            nominas = self.listar()
        elif rol == Rol.RESIDENTE:
            nominas = self.listar(residente_id=usuario["id"])
        elif rol == Rol.CONTADORA:
            nominas = [
                n for n in self.listar()
                if n.get("estado") in (EstadoNomina.AUTORIZADA, EstadoNomina.PAGADA)
            ]
        else:
            return []

        termino = (busqueda or "").strip().lower()
        if termino:
            nominas = [
                n for n in nominas
                if termino in (n.get("obraName") or "").lower()
                or termino in (n.get("residenteName") or "").lower()
            ]
        return nominas

    @staticmethod
    def agrupadas_por_estado(nominas) -> dict[str, list[dict]]:
        grupos = {estado: [] for estado in EstadoNomina.values}
        for nomina in nominas:
            grupos.setdefault(nomina.get("estado"), []).append(nomina)
        return grupos

    def mano_obra_por_obra(self, obra_id):
        return mano_obra_comprometida(self.listar(obra_id=obra_id))
