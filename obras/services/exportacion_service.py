from __future__ import annotations

from io import BytesIO

import pandas as pd
from django.http import HttpResponse

from obras.domain.calculos import DIAS_SEMANA, a_decimal
from .finanzas_service import alertas_financieras, finanzas_obra

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

COLUMNAS_NOMINA = (
    ["Nombre", "Puesto"]
    + [dia.capitalize() for dia in DIAS_SEMANA]
    + ["Días", "Salario diario", "Total semana", "Observaciones"]
)

COLUMNAS_FINANZAS = {
    "obraName": "Obra",
    "presupuesto": "Presupuesto",
    "manoObraTotal": "Mano de obra",
    "materialesTotal": "Materiales (estimado)",
    "gastosTotal": "Gasto total",
    "balance": "Balance",
    "avanceFisico": "Avance físico %",
    "avanceFinanciero": "Avance financiero %",
    "desviacionPresupuestal": "Desviación %",
    "roi": "ROI %",
}

FILA_ENCABEZADO = 4


def _formatos(workbook):
    return {
        "titulo": workbook.add_format({"bold": True, "font_size": 14}),
        "header": workbook.add_format({
            "bold": True,
            "bg_color": "#4F81BD",
            "font_color": "white",
            "border": 1,
        }),
        "moneda": workbook.add_format({"num_format": "$#,##0.00"}),
        "bold": workbook.add_format({"bold": True}),
    }


def construir_excel_nomina(nomina) -> bytes:
    """Hoja 'Nomina': encabezado con obra/semana y una fila por empleado."""
    filas = []
    for emp in nomina.get("empleados", []):
        fila = {"Nombre": emp.get("nombre", ""), "Puesto": emp.get("puesto", "")}
        for dia in DIAS_SEMANA:
            fila[dia.capitalize()] = float(a_decimal(emp.get("dias", {}).get(dia)))
        fila["Días"] = emp.get("totalDias", 0)
        fila["Salario diario"] = float(a_decimal(emp.get("salarioDiario")))
        fila["Total semana"] = float(a_decimal(emp.get("totalSemana")))
        fila["Observaciones"] = emp.get("observaciones", "")
        filas.append(fila)

    df = pd.DataFrame(filas, columns=COLUMNAS_NOMINA)

    output = BytesIO()
    with pd.ExcelWriter(output, engine="xlsxwriter") as writer:
        df.to_excel(writer, sheet_name="Nomina", index=False, startrow=FILA_ENCABEZADO)
        workbook = writer.book
        worksheet = writer.sheets["Nomina"]
        fmt = _formatos(workbook)

        worksheet.write(0, 0, f"Nómina - {nomina.get('obraName', '')}", fmt["titulo"])
        worksheet.write(1, 0, f"Semana del {nomina.get('semanaDel')} al {nomina.get('semanaAl')}")
        worksheet.write(2, 0, f"Residente: {nomina.get('residenteName', '')}  |  Estado: {nomina.get('estado')}")

        for col, header in enumerate(df.columns):
            worksheet.write(FILA_ENCABEZADO, col, header, fmt["header"])

        col_salario = COLUMNAS_NOMINA.index("Salario diario")
        col_total = COLUMNAS_NOMINA.index("Total semana")
        worksheet.set_column(0, len(COLUMNAS_NOMINA) - 1, 12)
        worksheet.set_column(0, 1, 22)
        worksheet.set_column(col_salario, col_total, 15, fmt["moneda"])

        fila_total = FILA_ENCABEZADO + len(df) + 1
        worksheet.write(fila_total, col_total - 1, "TOTAL", fmt["bold"])
        worksheet.write(fila_total, col_total, float(a_decimal(nomina.get("totalNomina"))), fmt["moneda"])

    return output.getvalue()


def construir_excel_finanzas(obras, nominas, hoy=None) -> bytes:
    """Hojas 'Finanzas' (una fila por obra) y 'Alertas'."""
    filas = []
    for obra in obras:
        f = finanzas_obra(obra, nominas, hoy)
        filas.append({titulo: (float(f[clave]) if clave != "obraName" else f[clave])
                      for clave, titulo in COLUMNAS_FINANZAS.items()})
    df = pd.DataFrame(filas, columns=list(COLUMNAS_FINANZAS.values()))

    alertas = pd.DataFrame(
        [
            {"Obra": a["obra"].get("nombre", ""), "Tipo": a["tipo"], "Mensaje": a["mensaje"]}
            for a in alertas_financieras(obras, nominas, hoy)
        ],
        columns=["Obra", "Tipo", "Mensaje"],
    )

    output = BytesIO()
    with pd.ExcelWriter(output, engine="xlsxwriter") as writer:
        df.to_excel(writer, sheet_name="Finanzas", index=False)
        alertas.to_excel(writer, sheet_name="Alertas", index=False)

        fmt = _formatos(writer.book)
        hoja = writer.sheets["Finanzas"]
        for col, header in enumerate(df.columns):
            hoja.write(0, col, header, fmt["header"])
        hoja.set_column(0, 0, 30)
        hoja.set_column(1, 5, 16, fmt["moneda"])
        hoja.set_column(6, len(df.columns) - 1, 14)
        writer.sheets["Alertas"].set_column(0, 2, 40)

    return output.getvalue()


def respuesta_excel(contenido: bytes, nombre_archivo: str) -> HttpResponse:
    response = HttpResponse(contenido, content_type=XLSX_CONTENT_TYPE)
    response["Content-Disposition"] = f"attachment; filename={nombre_archivo}"
    return response
