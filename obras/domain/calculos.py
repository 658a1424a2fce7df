from __future__ import annotations

import datetime
import uuid
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .exceptions import ValidationError

DIAS_SEMANA = ("lun", "mar", "mie", "jue", "vie", "sab", "dom")

CERO = Decimal("0")
CIEN = Decimal("100")


def a_decimal(valor, campo: str = "valor") -> Decimal:
    """Convierte números de un registro JSON a Decimal (float vía str)."""
    if valor is None or valor == "":
        return CERO
    if isinstance(valor, bool):
        raise ValidationError(f"{campo}: se esperaba un número.", code="numero_invalido")
    if isinstance(valor, float):
        valor = str(valor)
    try:
        resultado = Decimal(valor)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{campo}: '{valor}' no es un número válido.", code="numero_invalido")
    if not resultado.is_finite():
        raise ValidationError(f"{campo}: '{valor}' no es un número válido.", code="numero_invalido")
    return resultado


def redondear(valor: Decimal, decimales: int = 2) -> Decimal:
    return valor.quantize(Decimal(1).scaleb(-decimales), rounding=ROUND_HALF_UP)


def a_numero(valor: Decimal):
    """Decimal -> int/float para guardar en JSON."""
    if valor == valor.to_integral_value():
        return int(valor)
    return float(valor)


def calcular_empleado(empleado: dict, posicion: int = 1) -> dict:
    """
    Normaliza una fila de empleado y recalcula sus derivados:
    - totalDias = días con valor > 0 (no la suma de los valores)
    - totalSemana = totalDias * salarioDiario
    """
    if not isinstance(empleado, dict):
        raise ValidationError(f"Empleado #{posicion}: se esperaba un objeto.", code="empleado_invalido")

    nombre = empleado.get("nombre")
    if nombre is not None and not isinstance(nombre, str):
        raise ValidationError(f"Empleado #{posicion}: el nombre debe ser texto.", code="empleado_invalido")
    nombre = (nombre or "").strip()
    if not nombre:
        raise ValidationError(f"Empleado #{posicion}: el nombre es obligatorio.", code="empleado_sin_nombre")

    dias_in = empleado.get("dias") or {}
    if not isinstance(dias_in, dict):
        raise ValidationError(f"Empleado '{nombre}': 'dias' debe ser un objeto por día.", code="empleado_invalido")
    desconocidos = set(dias_in) - set(DIAS_SEMANA)
    if desconocidos:
        raise ValidationError(
            f"Empleado '{nombre}': días no reconocidos {sorted(desconocidos)}.", code="dia_invalido"
        )

    dias = {}
    for dia in DIAS_SEMANA:
        valor = a_decimal(dias_in.get(dia, 0), f"{nombre}.dias.{dia}")
        if valor < 0:
            raise ValidationError(f"Empleado '{nombre}': el día '{dia}' no puede ser negativo.", code="dia_negativo")
        dias[dia] = a_numero(valor)

    salario = a_decimal(empleado.get("salarioDiario"), f"{nombre}.salarioDiario")
    if salario < 0:
        raise ValidationError(f"Empleado '{nombre}': el salario diario no puede ser negativo.", code="salario_negativo")

    total_dias = sum(1 for valor in dias.values() if valor > 0)
    total_semana = salario * total_dias

    return {
        "id": empleado.get("id") or uuid.uuid4().hex,
        "nombre": nombre,
        "puesto": (empleado.get("puesto") or "").strip(),
        "dias": dias,
        "totalDias": total_dias,
        "salarioDiario": a_numero(salario),
        "totalSemana": a_numero(redondear(total_semana)),
        "observaciones": empleado.get("observaciones") or "",
    }


def calcular_empleados(empleados) -> list[dict]:
    if empleados is not None and not isinstance(empleados, (list, tuple)):
        raise ValidationError("Los empleados deben enviarse como una lista.", code="empleado_invalido")
    if not empleados:
        raise ValidationError("La nómina debe tener al menos un empleado.", code="nomina_sin_empleados")
    return [calcular_empleado(emp, i) for i, emp in enumerate(empleados, 1)]


def calcular_total_nomina(empleados) -> Decimal:
    return sum((a_decimal(emp.get("totalSemana")) for emp in empleados), CERO)


def a_fecha(valor, campo: str = "fecha"):
    """Acepta date/datetime o texto ISO (YYYY-MM-DD, también con hora)."""
    if isinstance(valor, datetime.datetime):
        return valor.date()
    if isinstance(valor, datetime.date):
        return valor
    if not valor:
        raise ValidationError(f"{campo}: la fecha es obligatoria.", code="fecha_requerida")
    try:
        return datetime.date.fromisoformat(str(valor)[:10])
    except ValueError:
        raise ValidationError(f"{campo}: '{valor}' no es una fecha válida (YYYY-MM-DD).", code="fecha_invalida")
