"""
Agregados financieros calculados en cada lectura a partir de las obras y
nóminas actuales. Nada de lo que sale de aquí se guarda.

Base de mano de obra: nóminas autorizadas o pagadas (gasto comprometido).
Materiales: porcentaje fijo del presupuesto (OBRAS_FINANZAS["PORCENTAJE_MATERIALES"]).
"""
from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.utils import timezone

from obras.domain.calculos import CERO, CIEN, a_decimal, a_fecha, redondear
from obras.models import EstadoNomina, EstadoObra, Rol, TipoAlerta

ESTADOS_GASTO = (EstadoNomina.AUTORIZADA, EstadoNomina.PAGADA)


def _conf(clave: str) -> Decimal:
    return Decimal(str(settings.OBRAS_FINANZAS[clave]))


def formatear_moneda(valor) -> str:
    valor = a_decimal(valor)
    signo = "-" if valor < 0 else ""
    return f"{signo}${abs(valor):,.0f}"


def _porcentaje(parte: Decimal, total: Decimal) -> Decimal:
    if total == 0:
        return redondear(CERO)
    return redondear(parte / total * CIEN)


def _suma_nominas(nominas, estados) -> Decimal:
    return sum(
        (a_decimal(n.get("totalNomina")) for n in nominas if n.get("estado") in estados),
        CERO,
    )


def mano_obra_comprometida(nominas, obra_id=None) -> Decimal:
    if obra_id is not None:
        nominas = [n for n in nominas if n.get("obraId") == obra_id]
    return _suma_nominas(nominas, ESTADOS_GASTO)


def materiales_estimados(presupuesto: Decimal) -> Decimal:
    return presupuesto * _conf("PORCENTAJE_MATERIALES")


def avance_fisico(obra, hoy=None) -> Decimal:
    """Fracción de calendario transcurrida entre inicio y término, 0-100."""
    hoy = hoy or timezone.localdate()
    inicio = a_fecha(obra.get("fechaInicio"), "fechaInicio")
    termino = a_fecha(obra.get("fechaTermino"), "fechaTermino")

    if hoy >= termino:
        return redondear(CIEN)
    if hoy <= inicio:
        return redondear(CERO)

    transcurrido = Decimal((hoy - inicio).days)
    duracion = Decimal((termino - inicio).days)
    return redondear(min(CIEN, transcurrido / duracion * CIEN))


def finanzas_obra(obra, nominas, hoy=None) -> dict:
    presupuesto = a_decimal(obra.get("presupuestoTotal"))
    mano_obra = mano_obra_comprometida(nominas, obra.get("id"))
    materiales = materiales_estimados(presupuesto)
    gastos = mano_obra + materiales

    return {
        "obraId": obra.get("id"),
        "obraName": obra.get("nombre", ""),
        "presupuesto": redondear(presupuesto),
        "manoObraTotal": redondear(mano_obra),
        "materialesTotal": redondear(materiales),
        "gastosTotal": redondear(gastos),
        "balance": redondear(presupuesto - gastos),
        "avanceFisico": avance_fisico(obra, hoy),
        "avanceFinanciero": _porcentaje(gastos, presupuesto),
        "desviacionPresupuestal": _porcentaje(gastos - presupuesto, presupuesto),
        "roi": _porcentaje(presupuesto - gastos, presupuesto),
    }


def estadisticas_dashboard(obras, nominas) -> dict:
    total_inversion = sum((a_decimal(o.get("presupuestoTotal")) for o in obras), CERO)
    total_mano_obra = _suma_nominas(nominas, ESTADOS_GASTO)
    total_materiales = materiales_estimados(total_inversion)

    def contar_obras(estado):
        return sum(1 for o in obras if o.get("estado") == estado)

    def contar_nominas(estado):
        return sum(1 for n in nominas if n.get("estado") == estado)

    return {
        "totalObras": len(obras),
        "obrasActivas": contar_obras(EstadoObra.ACTIVA),
        "obrasTerminadas": contar_obras(EstadoObra.TERMINADA),
        "obrasCanceladas": contar_obras(EstadoObra.CANCELADA),
        "totalInversion": redondear(total_inversion),
        "totalManoObra": redondear(total_mano_obra),
        "totalMateriales": redondear(total_materiales),
        "gananciaPerdida": redondear(total_inversion - total_mano_obra - total_materiales),
        "nominasPendientes": contar_nominas(EstadoNomina.PENDIENTE),
        "nominasValidadas": contar_nominas(EstadoNomina.VALIDADA),
        "nominasAutorizadas": contar_nominas(EstadoNomina.AUTORIZADA),
        "nominasPagadas": contar_nominas(EstadoNomina.PAGADA),
    }


def alertas_financieras(obras, nominas, hoy=None) -> list[dict]:
    critica = _conf("UMBRAL_DESVIACION_CRITICA")
    advertencia = _conf("UMBRAL_DESVIACION_ADVERTENCIA")
    desfase_grave = _conf("UMBRAL_DESFASE_GRAVE")
    desfase = _conf("UMBRAL_DESFASE")
    pago_terminada = _conf("UMBRAL_PAGO_OBRA_TERMINADA")

    alertas = []

    def agregar(obra, tipo, mensaje):
        alertas.append({"obra": obra, "tipo": tipo.value, "mensaje": mensaje})

    for obra in obras:
        f = finanzas_obra(obra, nominas, hoy)
        desviacion = f["desviacionPresupuestal"]

        if desviacion > critica:
            agregar(
                obra,
                TipoAlerta.CRITICO,
                f"Sobrepresupuesto del {desviacion:.1f}%. Presupuesto: {formatear_moneda(f['presupuesto'])}, "
                f"Gastado: {formatear_moneda(f['gastosTotal'])}",
            )
        elif desviacion > advertencia:
            agregar(obra, TipoAlerta.ADVERTENCIA, f"Desviación presupuestal del {desviacion:.1f}%")

        diferencia = f["avanceFinanciero"] - f["avanceFisico"]
        if diferencia > desfase_grave:
            agregar(
                obra,
                TipoAlerta.ADVERTENCIA,
                f"Desfase grave: Avance financiero {f['avanceFinanciero']:.0f}% vs Avance físico "
                f"{f['avanceFisico']:.0f}%. Se ha pagado más de lo construido.",
            )
        elif diferencia > desfase:
            agregar(
                obra,
                TipoAlerta.ADVERTENCIA,
                f"Desfase: Avance financiero {f['avanceFinanciero']:.0f}% vs Avance físico {f['avanceFisico']:.0f}%",
            )

        if obra.get("estado") == EstadoObra.TERMINADA and f["avanceFinanciero"] < pago_terminada:
            agregar(
                obra,
                TipoAlerta.INFO,
                f"Obra terminada con {CIEN - f['avanceFinanciero']:.0f}% pendiente de pago",
            )

    return alertas


# ==========================================
# Paneles por rol
# ==========================================
def resumen_contadora(nominas) -> dict:
    por_pagar = [n for n in nominas if n.get("estado") == EstadoNomina.AUTORIZADA]
    pagadas = [n for n in nominas if n.get("estado") == EstadoNomina.PAGADA]
    return {
        "nominasPorPagar": len(por_pagar),
        "nominasPagadas": len(pagadas),
        "totalPorPagar": redondear(_suma_nominas(por_pagar, (EstadoNomina.AUTORIZADA,))),
        "totalPagado": redondear(_suma_nominas(pagadas, (EstadoNomina.PAGADA,))),
    }


def resumen_residente(usuario, obras, nominas, hoy=None) -> dict:
    if usuario.get("role") != Rol.RESIDENTE:
        return {"obras": [], "nominas": 0, "nominasPendientes": 0, "totalManoObra": redondear(CERO)}

    mis_obras = [o for o in obras if o.get("residenteId") == usuario["id"]]
    mis_nominas = [n for n in nominas if n.get("residenteId") == usuario["id"]]
    return {
        "obras": [finanzas_obra(o, nominas, hoy) for o in mis_obras],
        "nominas": len(mis_nominas),
        "nominasPendientes": sum(1 for n in mis_nominas if n.get("estado") == EstadoNomina.PENDIENTE),
        "totalManoObra": redondear(_suma_nominas(mis_nominas, ESTADOS_GASTO)),
    }
