import datetime
import json
from decimal import Decimal
from io import BytesIO, StringIO

import pandas as pd
from django.core.exceptions import PermissionDenied, ValidationError
from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management import call_command
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone

from .domain.calculos import calcular_empleado, calcular_empleados
from .domain.exceptions import NotFoundError, StorageError, TransicionInvalidaError
from .models import ColeccionPersistida, EstadoNomina, Rol
from .repositories.coleccion_repo import AlmacenLocal, RegistroSesion
from .services.auth_service import ServicioSesion
from .services.documento_service import RegistroDocumentos
from .services.exportacion_service import construir_excel_finanzas, construir_excel_nomina
from .services.finanzas_service import (
    alertas_financieras,
    avance_fisico,
    estadisticas_dashboard,
    finanzas_obra,
    resumen_contadora,
)
from .services.nomina_service import LibroNominas
from .services.obra_service import RegistroObras
from .services.usuario_service import RegistroUsuarios

HOY = timezone.localdate()


def empleado(nombre="Juan Pérez", salario=500, **dias):
    return {"nombre": nombre, "puesto": "Albañil", "salarioDiario": salario, "dias": dias}


class BaseObrasTestCase(TestCase):

    prefijo = "test"

    def setUp(self):
        """Configuración inicial: tres roles, una obra activa y el libro de nóminas"""
        self.almacen = AlmacenLocal(prefijo=self.prefijo)
        self.usuarios = RegistroUsuarios(self.almacen)

        self.admin = self.usuarios.crear(username="admin", password="admin123", role="admin", name="Administrador")
        self.residente = self.usuarios.crear(
            username="residente", password="res123", role="residente", name="Ing. Carlos Ruiz"
        )
        self.contadora = self.usuarios.crear(
            username="contadora", password="cont123", role="contadora", name="C.P. Laura Méndez"
        )

        self.obras = RegistroObras(self.almacen)
        self.obra = self.obras.crear(
            nombre="Puente Norte",
            ubicacion="Km 12",
            fecha_inicio=HOY - datetime.timedelta(days=30),
            fecha_termino=HOY + datetime.timedelta(days=150),
            residente_id=self.residente["id"],
            presupuesto_total=100000,
        )
        self.libro = LibroNominas(self.almacen)

    def crear_nomina(self, empleados=None, usuario=None):
        return self.libro.crear(
            usuario=usuario or self.residente,
            obra_id=self.obra["id"],
            semana_del="2026-03-02",
            semana_al="2026-03-08",
            empleados=empleados or [empleado(lun=1, mar=1, mie=1)],
        )


# ============================================================
# Almacén de colecciones
# ============================================================
class ColeccionTests(TestCase):

    def setUp(self):
        self.almacen = AlmacenLocal(prefijo="test")

    def test_coleccion_vacia(self):
        """Un slot inexistente se lee como lista vacía"""
        self.assertEqual(self.almacen.obras.load_all(), [])

    def test_save_all_sobrescribe(self):
        """save_all reemplaza la colección completa"""
        self.almacen.obras.save_all([{"id": "a"}, {"id": "b"}])
        self.almacen.obras.save_all([{"id": "c"}])
        self.assertEqual(self.almacen.obras.load_all(), [{"id": "c"}])

    def test_contenido_corrupto(self):
        """JSON ilegible no se degrada a lista vacía: lanza StorageError"""
        ColeccionPersistida.objects.create(nombre="test_obras", contenido="{no es json")
        with self.assertRaises(StorageError):
            self.almacen.obras.load_all()

    def test_contenido_no_lista(self):
        ColeccionPersistida.objects.create(nombre="test_nominas", contenido='{"id": 1}')
        with self.assertRaises(StorageError):
            self.almacen.nominas.load_all()

    def test_sesion_corrupta(self):
        ColeccionPersistida.objects.create(nombre="test_auth", contenido="[[[")
        with self.assertRaises(StorageError):
            RegistroSesion("test_auth").load()

    def test_prefijos_independientes(self):
        """Cada prefijo es una copia independiente de los datos"""
        AlmacenLocal(prefijo="a").obras.save_all([{"id": "x"}])
        self.assertEqual(AlmacenLocal(prefijo="b").obras.load_all(), [])


# ============================================================
# Cálculos de empleados
# ============================================================
class CalculoEmpleadoTests(SimpleTestCase):

    def test_total_dias_cuenta_dias_trabajados(self):
        """totalDias cuenta días con valor > 0, no suma sus magnitudes"""
        emp = calcular_empleado(empleado(salario=100, lun=1, mar=0.5, mie=2))
        self.assertEqual(emp["totalDias"], 3)
        self.assertEqual(emp["totalSemana"], 300)
        self.assertEqual(emp["dias"]["dom"], 0)

    def test_nombre_obligatorio(self):
        with self.assertRaises(ValidationError):
            calcular_empleado(empleado(nombre="   ", lun=1))

    def test_dia_negativo(self):
        with self.assertRaises(ValidationError):
            calcular_empleado(empleado(lun=-1))

    def test_dia_desconocido(self):
        with self.assertRaises(ValidationError):
            calcular_empleado(empleado(lunes=1))

    def test_salario_no_numerico(self):
        with self.assertRaises(ValidationError):
            calcular_empleado(empleado(salario="quinientos", lun=1))

    def test_empleado_no_es_objeto(self):
        """Una fila que no es objeto es un error de validación, no un AttributeError"""
        with self.assertRaises(ValidationError):
            calcular_empleados(["Juan"])

    def test_empleados_no_es_lista(self):
        with self.assertRaises(ValidationError):
            calcular_empleados({"nombre": "Juan"})

    def test_dias_no_es_objeto(self):
        datos = empleado(lun=1)
        datos["dias"] = [1, 1, 1]
        with self.assertRaises(ValidationError):
            calcular_empleado(datos)


# ============================================================
# Usuarios y sesión
# ============================================================
class UsuarioTests(BaseObrasTestCase):

    def test_username_unico_entre_activos(self):
        with self.assertRaises(ValidationError):
            self.usuarios.crear(username="residente", password="x", role="residente", name="Otro")

    def test_username_reutilizable_si_inactivo(self):
        """Un username de una cuenta desactivada puede volver a usarse"""
        self.usuarios.actualizar(self.residente["id"], isActive=False)
        nuevo = self.usuarios.crear(username="residente", password="x", role="residente", name="Otro")
        self.assertTrue(nuevo["isActive"])

        # Reactivar la cuenta vieja chocaría con la nueva
        with self.assertRaises(ValidationError):
            self.usuarios.actualizar(self.residente["id"], isActive=True)

    def test_rol_invalido(self):
        with self.assertRaises(ValidationError):
            self.usuarios.crear(username="x", password="x", role="jefe", name="X")

    def test_reset_password(self):
        self.assertTrue(self.usuarios.reset_password(self.residente["id"], "nueva456"))
        sesion = ServicioSesion(self.almacen)
        self.assertFalse(sesion.login("residente", "res123", "residente"))
        self.assertTrue(sesion.login("residente", "nueva456", "residente"))

    def test_reset_password_inexistente(self):
        with self.assertRaises(NotFoundError):
            self.usuarios.reset_password("user-nada", "x")

    def test_listar_por_rol_solo_activos(self):
        self.usuarios.actualizar(self.contadora["id"], isActive=False)
        self.assertEqual(self.usuarios.listar_por_rol(Rol.CONTADORA), [])
        self.assertEqual(len(self.usuarios.listar_por_rol(Rol.RESIDENTE)), 1)

    def test_eliminar_idempotente(self):
        self.assertTrue(self.usuarios.eliminar(self.contadora["id"]))
        self.assertFalse(self.usuarios.eliminar(self.contadora["id"]))

    def test_admin_por_defecto(self):
        """Solo se crea cuando no hay ninguna cuenta"""
        registro = RegistroUsuarios(AlmacenLocal(prefijo="vacio"))
        admin = registro.asegurar_admin_por_defecto()
        self.assertEqual(admin["username"], "admin")
        self.assertEqual(admin["role"], "admin")
        self.assertIsNone(registro.asegurar_admin_por_defecto())
        self.assertIsNone(self.usuarios.asegurar_admin_por_defecto())


class SesionTests(BaseObrasTestCase):

    def test_login_correcto(self):
        sesion = ServicioSesion(self.almacen)
        self.assertTrue(sesion.login("residente", "res123", "residente"))
        actual = sesion.usuario_actual()
        self.assertEqual(actual["id"], self.residente["id"])
        self.assertNotIn("password", actual)

    def test_login_rol_incorrecto(self):
        self.assertFalse(ServicioSesion(self.almacen).login("residente", "res123", "admin"))

    def test_login_cuenta_inactiva(self):
        self.usuarios.actualizar(self.residente["id"], isActive=False)
        self.assertFalse(ServicioSesion(self.almacen).login("residente", "res123", "residente"))

    def test_logout(self):
        sesion = ServicioSesion(self.almacen)
        sesion.login("admin", "admin123", "admin")
        sesion.logout()
        self.assertIsNone(sesion.usuario_actual())

    def test_cuenta_desactivada_cierra_sesion(self):
        sesion = ServicioSesion(self.almacen)
        sesion.login("residente", "res123", "residente")
        self.usuarios.actualizar(self.residente["id"], isActive=False)
        self.assertIsNone(sesion.usuario_actual())
        self.assertIsNone(self.almacen.sesion.load())


# ============================================================
# Obras
# ============================================================
class ObraTests(BaseObrasTestCase):

    def test_crear_obra(self):
        self.assertEqual(self.obra["estado"], "activa")
        self.assertEqual(self.obra["residenteName"], "Ing. Carlos Ruiz")
        self.assertTrue(self.obra["id"].startswith("obra-"))
        self.assertEqual(self.obra["createdAt"], self.obra["updatedAt"])

    def test_ids_unicos(self):
        otra = self.obras.crear(
            nombre="Puente Norte",
            ubicacion="Km 12",
            fecha_inicio=HOY,
            fecha_termino=HOY,
            residente_id=self.residente["id"],
            presupuesto_total=1,
        )
        self.assertNotEqual(otra["id"], self.obra["id"])

    def test_fechas_invertidas(self):
        with self.assertRaises(ValidationError):
            self.obras.actualizar(self.obra["id"], fechaTermino="2000-01-01")

    def test_residente_debe_tener_rol(self):
        with self.assertRaises(ValidationError):
            self.obras.actualizar(self.obra["id"], residenteId=self.contadora["id"])

    def test_actualizar_parcial(self):
        obra = self.obras.actualizar(self.obra["id"], presupuestoTotal=250000.5)
        self.assertEqual(obra["presupuestoTotal"], 250000.5)
        self.assertEqual(obra["nombre"], "Puente Norte")
        self.assertEqual(obra["createdAt"], self.obra["createdAt"])
        self.assertGreaterEqual(obra["updatedAt"], self.obra["updatedAt"])

    def test_id_no_editable(self):
        with self.assertRaises(ValidationError):
            self.obras.actualizar(self.obra["id"], id="otro")

    def test_terminar_y_cancelar(self):
        self.assertEqual(self.obras.terminar(self.obra["id"])["estado"], "terminada")
        self.assertEqual(self.obras.cancelar(self.obra["id"])["estado"], "cancelada")
        self.assertEqual(self.obras.activas(), [])

    def test_terminar_obra_que_no_ha_iniciado(self):
        """Si la obra aún no empieza, la fecha de término queda en su fecha de inicio"""
        inicio = HOY + datetime.timedelta(days=10)
        futura = self.obras.crear(
            nombre="Libramiento Sur",
            ubicacion="Km 3",
            fecha_inicio=inicio,
            fecha_termino=HOY + datetime.timedelta(days=100),
            residente_id=self.residente["id"],
            presupuesto_total=500000,
        )
        obra = self.obras.terminar(futura["id"])
        self.assertEqual(obra["estado"], "terminada")
        self.assertEqual(obra["fechaTermino"], inicio.isoformat())

    def test_bitacora_de_alta_y_baja(self):
        with self.assertLogs("obras.services.base", level="INFO") as logs:
            self.assertTrue(self.obras.eliminar(self.obra["id"]))
        self.assertIn(f"Baja de Obra: {self.obra['id']}", logs.output[0])

    def test_obtener_inexistente(self):
        with self.assertRaises(NotFoundError):
            self.obras.obtener("obra-nada")

    def test_eliminar_no_borra_en_cascada(self):
        """Las nóminas quedan huérfanas, no se eliminan"""
        nomina = self.crear_nomina()
        self.assertTrue(self.obras.eliminar(self.obra["id"]))
        self.assertFalse(self.obras.eliminar(self.obra["id"]))
        self.assertEqual(self.libro.obtener(nomina["id"])["obraId"], self.obra["id"])


# ============================================================
# Nóminas: alta, edición y flujo de aprobación
# ============================================================
class NominaTests(BaseObrasTestCase):

    def test_escenario_puente_norte(self):
        """Un empleado, 500 diarios, lunes a miércoles"""
        nomina = self.crear_nomina()
        emp = nomina["empleados"][0]

        self.assertEqual(emp["totalDias"], 3)
        self.assertEqual(emp["totalSemana"], 1500)
        self.assertEqual(nomina["totalNomina"], 1500)
        self.assertEqual(nomina["estado"], "pendiente")
        self.assertEqual(nomina["obraName"], "Puente Norte")
        self.assertEqual(nomina["residenteId"], self.residente["id"])
        self.assertIsNone(nomina["validadaAt"])

    def test_totales_del_cliente_se_ignoran(self):
        datos = empleado(lun=1)
        datos.update(totalDias=7, totalSemana=99999)
        nomina = self.crear_nomina([datos])
        self.assertEqual(nomina["totalNomina"], 500)

    def test_flujo_completo(self):
        """Cada transición sella exactamente una fecha y un estado"""
        nomina = self.crear_nomina()

        validada = self.libro.validar(self.residente, nomina["id"])
        self.assertEqual(validada["estado"], "validada")
        self.assertIsNotNone(validada["validadaAt"])
        self.assertIsNone(validada["autorizadaAt"])
        self.assertEqual(validada["updatedAt"], validada["validadaAt"])

        autorizada = self.libro.autorizar(self.admin, nomina["id"])
        self.assertEqual(autorizada["estado"], "autorizada")
        self.assertEqual(autorizada["validadaAt"], validada["validadaAt"])
        self.assertIsNotNone(autorizada["autorizadaAt"])
        self.assertIsNone(autorizada["pagadaAt"])

        pagada = self.libro.pagar(self.contadora, nomina["id"])
        self.assertEqual(pagada["estado"], "pagada")
        self.assertIsNotNone(pagada["pagadaAt"])

        with self.assertRaises(TransicionInvalidaError):
            self.libro.validar(self.residente, nomina["id"])

    def test_pagar_pendiente_falla(self):
        nomina = self.crear_nomina()
        with self.assertRaises(ValidationError):
            self.libro.pagar(self.contadora, nomina["id"])
        self.assertEqual(self.libro.obtener(nomina["id"])["estado"], "pendiente")

    def test_rol_incorrecto(self):
        nomina = self.crear_nomina()
        self.libro.validar(self.residente, nomina["id"])
        with self.assertRaises(PermissionDenied):
            self.libro.autorizar(self.residente, nomina["id"])
        with self.assertRaises(PermissionDenied):
            self.libro.autorizar(self.contadora, nomina["id"])

    def test_solo_el_residente_dueno_valida(self):
        otro = self.usuarios.crear(username="otro", password="x", role="residente", name="Otro Residente")
        nomina = self.crear_nomina()
        with self.assertRaises(PermissionDenied):
            self.libro.validar(otro, nomina["id"])
        with self.assertRaises(PermissionDenied):
            self.libro.validar(self.admin, nomina["id"])

    def test_transicion_inexistente(self):
        with self.assertRaises(NotFoundError):
            self.libro.autorizar(self.admin, "nomina-nada")

    def test_sin_empleados(self):
        with self.assertRaises(ValidationError):
            self.crear_nomina(empleados=[])

    def test_empleado_sin_nombre_no_escribe(self):
        with self.assertRaises(ValidationError):
            self.crear_nomina([empleado(lun=1), empleado(nombre="", lun=1)])
        self.assertEqual(self.libro.listar(), [])

    def test_semana_invertida(self):
        with self.assertRaises(ValidationError):
            self.libro.crear(
                usuario=self.residente,
                obra_id=self.obra["id"],
                semana_del="2026-03-08",
                semana_al="2026-03-02",
                empleados=[empleado(lun=1)],
            )

    def test_obra_inexistente(self):
        with self.assertRaises(NotFoundError):
            self.libro.crear(
                usuario=self.admin,
                obra_id="obra-nada",
                semana_del="2026-03-02",
                semana_al="2026-03-08",
                empleados=[empleado(lun=1)],
            )

    def test_obra_cancelada_no_admite_nominas(self):
        self.obras.cancelar(self.obra["id"])
        with self.assertRaises(ValidationError):
            self.crear_nomina()

    def test_residente_no_asignado(self):
        otro = self.usuarios.crear(username="otro", password="x", role="residente", name="Otro Residente")
        with self.assertRaises(PermissionDenied):
            self.crear_nomina(usuario=otro)

    def test_contadora_no_crea(self):
        with self.assertRaises(PermissionDenied):
            self.crear_nomina(usuario=self.contadora)

    def test_admin_crea_a_nombre_del_residente(self):
        nomina = self.crear_nomina(usuario=self.admin)
        self.assertEqual(nomina["residenteId"], self.residente["id"])
        self.assertEqual(nomina["residenteName"], "Ing. Carlos Ruiz")

    def test_editar_empleados_recalcula_total(self):
        nomina = self.crear_nomina()
        editada = self.libro.editar_empleados(
            usuario=self.residente,
            nomina_id=nomina["id"],
            empleados=[
                empleado(lun=1, mar=1, mie=1),
                empleado(nombre="Pedro López", salario=350, lun=1, mar=1),
            ],
        )
        self.assertEqual(editada["totalNomina"], 1500 + 700)
        self.assertEqual(editada["estado"], "pendiente")

    def test_editar_datos(self):
        nomina = self.crear_nomina()
        editada = self.libro.editar_datos(usuario=self.residente, nomina_id=nomina["id"], semana_al="2026-03-07")
        self.assertEqual(editada["semanaAl"], "2026-03-07")
        self.assertEqual(editada["semanaDel"], "2026-03-02")

    def test_no_se_edita_despues_de_validar(self):
        nomina = self.crear_nomina()
        self.libro.validar(self.residente, nomina["id"])
        with self.assertRaises(ValidationError):
            self.libro.editar_empleados(usuario=self.admin, nomina_id=nomina["id"], empleados=[empleado(lun=1)])

    def test_eliminar_idempotente(self):
        nomina = self.crear_nomina()
        self.assertTrue(self.libro.eliminar(nomina["id"], usuario=self.residente))
        self.assertFalse(self.libro.eliminar(nomina["id"], usuario=self.residente))

    def test_no_se_elimina_una_nomina_pagada(self):
        nomina = self.crear_nomina()
        self.libro.validar(self.residente, nomina["id"])
        self.libro.autorizar(self.admin, nomina["id"])
        self.libro.pagar(self.contadora, nomina["id"])
        with self.assertRaises(ValidationError):
            self.libro.eliminar(nomina["id"], usuario=self.admin)

    def test_visibles_por_rol(self):
        primera = self.crear_nomina()
        segunda = self.crear_nomina()
        self.libro.validar(self.residente, segunda["id"])
        self.libro.autorizar(self.admin, segunda["id"])

        self.assertEqual(len(self.libro.visibles_para(self.admin)), 2)
        self.assertEqual(len(self.libro.visibles_para(self.residente)), 2)
        self.assertEqual([n["id"] for n in self.libro.visibles_para(self.contadora)], [segunda["id"]])
        self.assertEqual(len(self.libro.visibles_para(self.admin, "puente")), 2)
        self.assertEqual(self.libro.visibles_para(self.admin, "otra obra"), [])

        grupos = LibroNominas.agrupadas_por_estado(self.libro.listar())
        self.assertEqual([n["id"] for n in grupos["pendiente"]], [primera["id"]])
        self.assertEqual(grupos["pagada"], [])

    def test_mano_obra_por_obra(self):
        """Solo cuentan nóminas autorizadas o pagadas"""
        pendiente = self.crear_nomina()
        autorizada = self.crear_nomina([empleado(salario=1000, lun=1, mar=1)])
        self.libro.validar(self.residente, autorizada["id"])
        self.libro.autorizar(self.admin, autorizada["id"])

        self.assertEqual(pendiente["totalNomina"], 1500)
        self.assertEqual(self.libro.mano_obra_por_obra(self.obra["id"]), Decimal("2000"))


# ============================================================
# Finanzas
# ============================================================
def obra_dict(obra_id, presupuesto, estado="activa", inicio="2026-01-01", termino="2026-12-31"):
    return {
        "id": obra_id,
        "nombre": f"Obra {obra_id}",
        "presupuestoTotal": presupuesto,
        "estado": estado,
        "fechaInicio": inicio,
        "fechaTermino": termino,
    }


def nomina_dict(obra_id, total, estado):
    return {"id": f"n-{obra_id}-{total}-{estado}", "obraId": obra_id, "totalNomina": total, "estado": estado}


class FinanzasTests(SimpleTestCase):

    def setUp(self):
        self.obra1 = obra_dict("o1", 100000)
        self.obra2 = obra_dict("o2", 50000)
        self.nominas = [nomina_dict("o1", 20000, "pagada")]

    def test_dashboard_escenario(self):
        stats = estadisticas_dashboard([self.obra1, self.obra2], self.nominas)
        self.assertEqual(stats["totalObras"], 2)
        self.assertEqual(stats["obrasActivas"], 2)
        self.assertEqual(stats["totalInversion"], Decimal("150000"))
        self.assertEqual(stats["totalManoObra"], Decimal("20000"))
        self.assertEqual(stats["totalMateriales"], Decimal("45000"))
        self.assertEqual(stats["gananciaPerdida"], Decimal("85000"))
        self.assertEqual(stats["nominasPagadas"], 1)
        self.assertEqual(stats["nominasPendientes"], 0)

    def test_desviacion_escenario(self):
        """((20000 + 30000) - 100000) / 100000 * 100 = -50%"""
        f = finanzas_obra(self.obra1, self.nominas, hoy=datetime.date(2026, 7, 1))
        self.assertEqual(f["manoObraTotal"], Decimal("20000"))
        self.assertEqual(f["materialesTotal"], Decimal("30000"))
        self.assertEqual(f["gastosTotal"], Decimal("50000"))
        self.assertEqual(f["desviacionPresupuestal"], Decimal("-50"))
        self.assertEqual(f["avanceFinanciero"], Decimal("50"))
        self.assertEqual(f["roi"], Decimal("50"))
        self.assertEqual(f["balance"], Decimal("50000"))

    def test_presupuesto_cero(self):
        f = finanzas_obra(obra_dict("o3", 0), [nomina_dict("o3", 1000, "pagada")])
        self.assertEqual(f["avanceFinanciero"], 0)
        self.assertEqual(f["desviacionPresupuestal"], 0)
        self.assertEqual(f["roi"], 0)

    def test_base_de_mano_de_obra(self):
        """Pendientes y validadas no cuentan; autorizadas sí"""
        nominas = self.nominas + [
            nomina_dict("o1", 1000, "pendiente"),
            nomina_dict("o1", 2000, "validada"),
            nomina_dict("o1", 4000, "autorizada"),
            nomina_dict("o2", 8000, "pagada"),
        ]
        self.assertEqual(finanzas_obra(self.obra1, nominas)["manoObraTotal"], Decimal("24000"))

    def test_redondeo_dos_decimales(self):
        f = finanzas_obra(obra_dict("o4", 30000), [nomina_dict("o4", 1000, "pagada")])
        # (1000 + 9000) / 30000 * 100 = 33.333...
        self.assertEqual(f["avanceFinanciero"], Decimal("33.33"))

    def test_avance_fisico_por_calendario(self):
        obra = obra_dict("o5", 1, inicio="2026-01-01", termino="2026-01-11")
        self.assertEqual(avance_fisico(obra, datetime.date(2025, 12, 1)), 0)
        self.assertEqual(avance_fisico(obra, datetime.date(2026, 1, 6)), Decimal("50"))
        self.assertEqual(avance_fisico(obra, datetime.date(2027, 1, 1)), 100)

    def test_alerta_critica(self):
        nominas = [nomina_dict("o1", 90000, "autorizada")]
        alertas = alertas_financieras([self.obra1], nominas, hoy=datetime.date(2027, 1, 1))
        criticas = [a for a in alertas if a["tipo"] == "critico"]
        self.assertEqual(len(criticas), 1)
        self.assertEqual(
            criticas[0]["mensaje"],
            "Sobrepresupuesto del 20.0%. Presupuesto: $100,000, Gastado: $120,000",
        )
        self.assertIs(criticas[0]["obra"], self.obra1)

    def test_alerta_desviacion_menor(self):
        nominas = [nomina_dict("o1", 77000, "pagada")]
        alertas = alertas_financieras([self.obra1], nominas, hoy=datetime.date(2027, 1, 1))
        self.assertEqual([(a["tipo"], a["mensaje"]) for a in alertas], [
            ("advertencia", "Desviación presupuestal del 7.0%"),
        ])

    def test_alerta_desfase_grave(self):
        """Al iniciar la obra el gasto estimado de materiales ya supera al avance físico"""
        alertas = alertas_financieras([self.obra1], [], hoy=datetime.date(2026, 1, 1))
        self.assertEqual(len(alertas), 1)
        self.assertEqual(alertas[0]["tipo"], "advertencia")
        self.assertTrue(alertas[0]["mensaje"].startswith("Desfase grave"))

    def test_alerta_obra_terminada(self):
        obra = obra_dict("o6", 100000, estado="terminada")
        alertas = alertas_financieras([obra], [], hoy=datetime.date(2027, 1, 1))
        self.assertEqual([(a["tipo"], a["mensaje"]) for a in alertas], [
            ("info", "Obra terminada con 70% pendiente de pago"),
        ])

    @override_settings(OBRAS_FINANZAS={
        "PORCENTAJE_MATERIALES": "0.30",
        "UMBRAL_DESVIACION_CRITICA": "25",
        "UMBRAL_DESVIACION_ADVERTENCIA": "5",
        "UMBRAL_DESFASE_GRAVE": "25",
        "UMBRAL_DESFASE": "15",
        "UMBRAL_PAGO_OBRA_TERMINADA": "95",
    })
    def test_umbrales_configurables(self):
        nominas = [nomina_dict("o1", 90000, "autorizada")]
        alertas = alertas_financieras([self.obra1], nominas, hoy=datetime.date(2027, 1, 1))
        self.assertFalse(any(a["tipo"] == "critico" for a in alertas))

    def test_resumen_contadora(self):
        nominas = [
            nomina_dict("o1", 1000, "autorizada"),
            nomina_dict("o1", 2500, "autorizada"),
            nomina_dict("o2", 4000, "pagada"),
            nomina_dict("o2", 9999, "pendiente"),
        ]
        resumen = resumen_contadora(nominas)
        self.assertEqual(resumen["nominasPorPagar"], 2)
        self.assertEqual(resumen["totalPorPagar"], Decimal("3500"))
        self.assertEqual(resumen["totalPagado"], Decimal("4000"))


# ============================================================
# Documentos
# ============================================================
class ArchivoIlegible:
    name = "roto.pdf"

    def read(self):
        raise OSError("Error de lectura del disco")


class DocumentoTests(BaseObrasTestCase):

    def setUp(self):
        super().setUp()
        self.documentos = RegistroDocumentos(self.almacen)

    def subir(self, tipo="contrato"):
        archivo = SimpleUploadedFile("contrato.pdf", b"%PDF-1.4 demo", content_type="application/pdf")
        return self.documentos.subir(obra_id=self.obra["id"], tipo=tipo, archivo=archivo, subido_por="Administrador")

    def test_subir_y_descargar(self):
        doc = self.subir()
        self.assertEqual(doc["nombre"], "contrato")
        self.assertEqual(doc["fileName"], "contrato.pdf")
        self.assertEqual(doc["size"], 13)
        self.assertTrue(doc["fileData"].startswith("data:application/pdf;base64,"))

        registro, contenido = self.documentos.descargar(doc["id"])
        self.assertEqual(registro["id"], doc["id"])
        self.assertEqual(contenido, b"%PDF-1.4 demo")

    def test_tipo_invalido(self):
        with self.assertRaises(ValidationError):
            self.subir(tipo="plano")

    def test_obra_inexistente(self):
        with self.assertRaises(NotFoundError):
            self.documentos.subir(obra_id="obra-nada", tipo="otro", archivo=b"x", subido_por="Admin")

    def test_lectura_fallida_no_guarda(self):
        with self.assertRaises(OSError):
            self.documentos.subir(
                obra_id=self.obra["id"], tipo="otro", archivo=ArchivoIlegible(), subido_por="Admin"
            )
        self.assertEqual(self.documentos.listar_por_obra(self.obra["id"]), [])

    @override_settings(OBRAS_MAX_DOCUMENTO_BYTES=4)
    def test_archivo_muy_grande(self):
        with self.assertRaises(ValidationError):
            self.subir()

    @override_settings(OBRAS_MAX_DOCUMENTO_BYTES=4)
    def test_tamano_declarado_se_revisa_antes_de_leer(self):
        """Con `size` excedido el archivo no se llega a leer"""
        archivo = ArchivoIlegible()
        archivo.size = 1024
        with self.assertRaises(ValidationError):
            self.documentos.subir(obra_id=self.obra["id"], tipo="otro", archivo=archivo, subido_por="Admin")
        self.assertEqual(self.documentos.listar_por_obra(self.obra["id"]), [])

    def test_listar_y_eliminar(self):
        contrato = self.subir()
        self.subir(tipo="factura")
        self.assertEqual(len(self.documentos.listar_por_obra(self.obra["id"])), 2)
        self.assertEqual(
            [d["id"] for d in self.documentos.listar_por_tipo(self.obra["id"], "contrato")],
            [contrato["id"]],
        )
        self.assertTrue(self.documentos.eliminar(contrato["id"]))
        self.assertFalse(self.documentos.eliminar(contrato["id"]))

    def test_contenido_danado(self):
        doc = self.subir()
        registros = self.almacen.documentos.load_all()
        registros[0]["fileData"] = "data:application/pdf;base64,@@@"
        self.almacen.documentos.save_all(registros)
        with self.assertRaises(StorageError):
            self.documentos.descargar(doc["id"])


# ============================================================
# Exportación a Excel
# ============================================================
class ExportacionTests(BaseObrasTestCase):

    def test_excel_nomina(self):
        nomina = self.crear_nomina()
        contenido = construir_excel_nomina(nomina)
        self.assertTrue(contenido.startswith(b"PK"))

        df = pd.read_excel(BytesIO(contenido), sheet_name="Nomina", header=None)
        celdas = df.values.ravel().tolist()
        self.assertIn("Juan Pérez", celdas)
        self.assertIn("Total semana", celdas)
        self.assertIn("TOTAL", celdas)
        self.assertIn(1500, celdas)

    def test_excel_finanzas(self):
        contenido = construir_excel_finanzas(self.obras.listar(), self.libro.listar())
        df = pd.read_excel(BytesIO(contenido), sheet_name="Finanzas")
        self.assertEqual(df["Obra"].tolist(), ["Puente Norte"])
        self.assertEqual(df["Materiales (estimado)"].tolist(), [30000])


# ============================================================
# API JSON
# ============================================================
class ApiTests(BaseObrasTestCase):

    prefijo = "sismich"

    def login(self, username, password, role):
        return self.client.post(
            "/api/login/",
            data=json.dumps({"username": username, "password": password, "role": role}),
            content_type="application/json",
        )

    def post_json(self, url, datos=None):
        return self.client.post(url, data=json.dumps(datos or {}), content_type="application/json")

    def test_login_fallido(self):
        self.assertEqual(self.login("residente", "mala", "residente").status_code, 401)

    def test_sin_sesion(self):
        self.assertEqual(self.client.get("/api/dashboard/").status_code, 403)

    def test_flujo_por_api(self):
        self.assertEqual(self.login("residente", "res123", "residente").status_code, 200)
        resp = self.post_json("/api/nominas/", {
            "obraId": self.obra["id"],
            "semanaDel": "2026-03-02",
            "semanaAl": "2026-03-08",
            "empleados": [empleado(lun=1, mar=1, mie=1)],
        })
        self.assertEqual(resp.status_code, 201)
        nomina_id = resp.json()["id"]
        self.assertEqual(resp.json()["totalNomina"], 1500)

        resp = self.post_json(f"/api/nominas/{nomina_id}/validar/")
        self.assertEqual(resp.json()["estado"], "validada")

        self.post_json("/api/logout/")
        self.login("admin", "admin123", "admin")
        self.assertEqual(self.post_json(f"/api/nominas/{nomina_id}/autorizar/").status_code, 200)
        self.assertEqual(self.post_json(f"/api/nominas/{nomina_id}/pagar/").status_code, 403)

        self.login("contadora", "cont123", "contadora")
        resp = self.post_json(f"/api/nominas/{nomina_id}/pagar/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["estado"], EstadoNomina.PAGADA)

        # Transición fuera de orden
        self.assertEqual(self.post_json(f"/api/nominas/{nomina_id}/pagar/").status_code, 400)

        resp = self.client.get("/api/dashboard/")
        self.assertEqual(resp.json()["pagos"]["totalPagado"], 1500)

    def test_nomina_inexistente(self):
        self.login("admin", "admin123", "admin")
        self.assertEqual(self.post_json("/api/nominas/nomina-nada/autorizar/").status_code, 404)
        self.assertEqual(self.post_json("/api/nominas/nomina-nada/borrar/").status_code, 404)

    def test_nomina_invalida(self):
        self.login("residente", "res123", "residente")
        resp = self.post_json("/api/nominas/", {
            "obraId": self.obra["id"],
            "semanaDel": "2026-03-02",
            "semanaAl": "2026-03-08",
            "empleados": [],
        })
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(resp.json()["ok"])

        for empleados in (["Juan"], {"nombre": "Juan"}, [{"nombre": "Juan", "dias": "lun"}]):
            resp = self.post_json("/api/nominas/", {
                "obraId": self.obra["id"],
                "semanaDel": "2026-03-02",
                "semanaAl": "2026-03-08",
                "empleados": empleados,
            })
            self.assertEqual(resp.status_code, 400)
        self.assertEqual(self.libro.listar(), [])

    def test_dashboard_admin_y_alertas(self):
        self.login("admin", "admin123", "admin")
        stats = self.client.get("/api/dashboard/").json()["stats"]
        self.assertEqual(stats["totalObras"], 1)
        self.assertEqual(stats["totalInversion"], 100000)

        resp = self.client.get("/api/alertas/")
        self.assertEqual(resp.status_code, 200)
        self.assertIsInstance(resp.json(), list)

    def test_dashboard_residente(self):
        """El residente solo ve sus obras y nóminas"""
        self.crear_nomina()
        self.login("residente", "res123", "residente")
        datos = self.client.get("/api/dashboard/").json()
        self.assertEqual([o["obraId"] for o in datos["obras"]], [self.obra["id"]])
        self.assertEqual(datos["nominas"], 1)
        self.assertEqual(datos["nominasPendientes"], 1)
        self.assertEqual(datos["totalManoObra"], 0)

    def test_alertas_solo_admin(self):
        self.login("contadora", "cont123", "contadora")
        self.assertEqual(self.client.get("/api/alertas/").status_code, 403)

    def test_finanzas_obra(self):
        self.login("residente", "res123", "residente")
        resp = self.client.get(f"/api/obras/{self.obra['id']}/finanzas/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["materialesTotal"], 30000)
        self.assertEqual(self.client.get("/api/obras/obra-nada/finanzas/").status_code, 404)

    def test_excel_nomina(self):
        nomina = self.crear_nomina()
        self.login("residente", "res123", "residente")
        resp = self.client.get(f"/api/nominas/{nomina['id']}/excel/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(
            resp["Content-Type"],
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )

        # La contadora no ve nóminas pendientes
        self.login("contadora", "cont123", "contadora")
        self.assertEqual(self.client.get(f"/api/nominas/{nomina['id']}/excel/").status_code, 403)

    def test_subir_documento(self):
        self.login("residente", "res123", "residente")
        archivo = SimpleUploadedFile("factura.pdf", b"%PDF-1.4", content_type="application/pdf")
        resp = self.client.post(
            f"/api/obras/{self.obra['id']}/documentos/",
            data={"tipo": "factura", "archivo": archivo},
        )
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["tipo"], "factura")
        self.assertNotIn("fileData", resp.json())


# ============================================================
# Comando seed
# ============================================================
class SeedCommandTests(TestCase):

    def test_seed_demo(self):
        salida = StringIO()
        call_command("seed", demo=True, prefijo="seedtest", stdout=salida)

        almacen = AlmacenLocal(prefijo="seedtest")
        self.assertEqual(len(almacen.usuarios.load_all()), 3)
        self.assertEqual([o["nombre"] for o in almacen.obras.load_all()], ["Puente Norte"])
        nomina = almacen.nominas.load_all()[0]
        self.assertEqual(nomina["totalNomina"], 5 * 500 + 6 * 350)

        # Segunda corrida no duplica
        call_command("seed", demo=True, prefijo="seedtest", stdout=salida)
        self.assertEqual(len(almacen.obras.load_all()), 1)
