import json
import logging
from decimal import Decimal
from functools import wraps

from django.core.exceptions import PermissionDenied, ValidationError
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST, require_http_methods

from obras.domain.exceptions import NotFoundError, StorageError
from obras.domain.rules import require_role
from obras.models import Rol
from obras.repositories.coleccion_repo import AlmacenLocal, SesionDjango
from obras.services.auth_service import ServicioSesion
from obras.services.documento_service import RegistroDocumentos
from obras.services.exportacion_service import (
    construir_excel_finanzas,
    construir_excel_nomina,
    respuesta_excel,
)
from obras.services.finanzas_service import (
    alertas_financieras,
    estadisticas_dashboard,
    finanzas_obra,
    resumen_contadora,
    resumen_residente,
)
from obras.services.nomina_service import LibroNominas
from obras.services.obra_service import RegistroObras

logger = logging.getLogger(__name__)


# ==========================================
# Helpers
# ==========================================
def _plano(valor):
    """Decimal -> float para JSON."""
    if isinstance(valor, Decimal):
        return float(valor)
    if isinstance(valor, dict):
        return {k: _plano(v) for k, v in valor.items()}
    if isinstance(valor, (list, tuple)):
        return [_plano(v) for v in valor]
    return valor


def _ok(datos, status=200):
    return JsonResponse(_plano(datos), status=status, safe=False)


def _error(mensaje, status):
    return JsonResponse({"ok": False, "error": mensaje}, status=status)


def _json(request) -> dict:
    try:
        datos = json.loads(request.body or b"{}")
    except json.JSONDecodeError:
        raise ValidationError("El cuerpo de la petición no es JSON válido.")
    if not isinstance(datos, dict):
        raise ValidationError("Se esperaba un objeto JSON.")
    return datos


def _almacen(request):
    return AlmacenLocal(sesion=SesionDjango(request.session))


def _usuario(almacen):
    usuario = ServicioSesion(almacen).usuario_actual()
    if usuario is None:
        raise PermissionDenied("Inicia sesión primero.")
    return usuario


def api_errores(view):
    """Traduce los errores de dominio a respuestas JSON con su código HTTP."""
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except NotFoundError as exc:
            return _error(str(exc), 404)
        except ValidationError as exc:
            return _error(" ".join(exc.messages), 400)
        except PermissionDenied as exc:
            return _error(str(exc) or "No tienes permisos para esta acción.", 403)
        except StorageError as exc:
            logger.exception("Error de almacenamiento en %s", request.path)
            return _error(str(exc), 500)
    return wrapper


# ==========================================
# Sesión
# ==========================================
@require_POST
@api_errores
def api_login(request):
    datos = _json(request)
    almacen = _almacen(request)
    sesion = ServicioSesion(almacen)
    if not sesion.login(datos.get("username"), datos.get("password"), datos.get("role")):
        return _error("Usuario, contraseña o rol incorrectos.", 401)
    return _ok({"ok": True, "user": sesion.usuario_actual()})


@require_POST
@api_errores
def api_logout(request):
    ServicioSesion(_almacen(request)).logout()
    return _ok({"ok": True})


# ==========================================
# Paneles
# ==========================================
@require_GET
@api_errores
def api_dashboard(request):
    """Panel según el rol: admin (global), contadora (pagos), residente (sus obras)."""
    almacen = _almacen(request)
    usuario = _usuario(almacen)
    obras = almacen.obras.load_all()
    nominas = almacen.nominas.load_all()

    if usuario["role"] == Rol.ADMIN:
        return _ok({
            "stats": estadisticas_dashboard(obras, nominas),
            "alertas": len(alertas_financieras(obras, nominas)),
        })
    if usuario["role"] == Rol.CONTADORA:
        return _ok({
            "stats": estadisticas_dashboard(obras, nominas),
            "pagos": resumen_contadora(nominas),
        })
    return _ok(resumen_residente(usuario, obras, nominas))


@require_GET
@api_errores
def api_alertas(request):
    almacen = _almacen(request)
    require_role(_usuario(almacen), Rol.ADMIN)
    alertas = alertas_financieras(almacen.obras.load_all(), almacen.nominas.load_all())
    return _ok([
        {"obraId": a["obra"]["id"], "obraName": a["obra"].get("nombre"), "tipo": a["tipo"], "mensaje": a["mensaje"]}
        for a in alertas
    ])


@require_GET
@api_errores
def api_obra_finanzas(request, obra_id):
    almacen = _almacen(request)
    usuario = _usuario(almacen)
    obra = RegistroObras(almacen).obtener(obra_id)
    if usuario["role"] == Rol.RESIDENTE and obra.get("residenteId") != usuario["id"]:
        raise PermissionDenied("La obra no está asignada a este residente.")
    return _ok(finanzas_obra(obra, almacen.nominas.load_all()))


@require_GET
@api_errores
def api_finanzas_excel(request):
    almacen = _almacen(request)
    require_role(_usuario(almacen), Rol.ADMIN, Rol.CONTADORA)
    contenido = construir_excel_finanzas(almacen.obras.load_all(), almacen.nominas.load_all())
    return respuesta_excel(contenido, "finanzas_obras.xlsx")


# ==========================================
# Nóminas
# ==========================================
@require_http_methods(["GET", "POST"])
@api_errores
def api_nominas(request):
    almacen = _almacen(request)
    usuario = _usuario(almacen)
    libro = LibroNominas(almacen)

    if request.method == "GET":
        return _ok(libro.visibles_para(usuario, request.GET.get("q", "")))

    datos = _json(request)
    nomina = libro.crear(
        usuario=usuario,
        obra_id=datos.get("obraId"),
        semana_del=datos.get("semanaDel"),
        semana_al=datos.get("semanaAl"),
        fecha_elaboracion=datos.get("fechaElaboracion"),
        empleados=datos.get("empleados") or [],
        residente_id=datos.get("residenteId"),
    )
    return _ok(nomina, status=201)


ACCIONES_NOMINA = {
    "validar": LibroNominas.validar,
    "autorizar": LibroNominas.autorizar,
    "pagar": LibroNominas.pagar,
}


@require_POST
@api_errores
def api_nomina_transicion(request, nomina_id, accion):
    if accion not in ACCIONES_NOMINA:
        raise NotFoundError(f"Acción '{accion}' no existe.")
    almacen = _almacen(request)
    usuario = _usuario(almacen)
    nomina = ACCIONES_NOMINA[accion](LibroNominas(almacen), usuario, nomina_id)
    return _ok(nomina)


@require_GET
@api_errores
def api_nomina_excel(request, nomina_id):
    almacen = _almacen(request)
    usuario = _usuario(almacen)
    libro = LibroNominas(almacen)
    nomina = libro.obtener(nomina_id)
    if not any(n["id"] == nomina_id for n in libro.visibles_para(usuario)):
        raise PermissionDenied("No puedes ver esta nómina.")
    return respuesta_excel(construir_excel_nomina(nomina), f"nomina_{nomina['semanaDel']}.xlsx")


# ==========================================
# Documentos
# ==========================================
@require_POST
@api_errores
def api_documento_subir(request, obra_id):
    almacen = _almacen(request)
    usuario = _usuario(almacen)
    require_role(usuario, Rol.ADMIN, Rol.RESIDENTE)

    archivo = request.FILES.get("archivo")
    if archivo is None:
        raise ValidationError("Falta el archivo.")

    documento = RegistroDocumentos(almacen).subir(
        obra_id=obra_id,
        tipo=request.POST.get("tipo", "otro"),
        nombre=request.POST.get("nombre", ""),
        archivo=archivo,
        subido_por=usuario.get("name") or usuario.get("username"),
    )
    # El contenido no se devuelve; solo los metadatos
    return _ok({k: v for k, v in documento.items() if k != "fileData"}, status=201)
