from django.core.exceptions import PermissionDenied

from .exceptions import TransicionInvalidaError
from obras.models import Rol, EstadoNomina

# estado destino -> (estado origen, rol que la ejecuta, campo de fecha que se sella)
TRANSICIONES_NOMINA = {
    EstadoNomina.VALIDADA: (EstadoNomina.PENDIENTE, Rol.RESIDENTE, "validadaAt"),
    EstadoNomina.AUTORIZADA: (EstadoNomina.VALIDADA, Rol.ADMIN, "autorizadaAt"),
    EstadoNomina.PAGADA: (EstadoNomina.AUTORIZADA, Rol.CONTADORA, "pagadaAt"),
}


def require_role(usuario, *roles):
    if not usuario:
        raise PermissionDenied("No hay usuario en sesión.")
    if not usuario.get("isActive", False):
        raise PermissionDenied("Usuario inactivo.")
    if usuario.get("role") not in roles:
        raise PermissionDenied("No tienes permisos para esta acción.")
    return usuario


def require_owner_or_admin(usuario, residente_id):
    """El residente dueño del registro o un administrador."""
    require_role(usuario, Rol.RESIDENTE, Rol.ADMIN)
    if usuario["role"] == Rol.RESIDENTE and usuario["id"] != residente_id:
        raise PermissionDenied("No puedes modificar un registro que no es tuyo.")
    return usuario


def check_transicion(nomina, destino, usuario):
    """
    Valida que `usuario` pueda mover `nomina` a `destino`.
    Devuelve el nombre del campo de fecha que hay que sellar.
    """
    origen, rol, campo_fecha = TRANSICIONES_NOMINA[destino]

    if nomina["estado"] != origen:
        raise TransicionInvalidaError(
            f"La nómina está '{nomina['estado']}'; solo una nómina '{origen}' puede pasar a '{destino}'.",
            code="transicion_invalida",
        )

    require_role(usuario, rol)

    if rol == Rol.RESIDENTE and usuario["id"] != nomina["residenteId"]:
        raise PermissionDenied("Solo el residente que elaboró la nómina puede validarla.")

    return campo_fecha
