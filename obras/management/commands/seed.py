import datetime

from django.core.management.base import BaseCommand
from django.utils import timezone

from obras.models import Rol
from obras.repositories.coleccion_repo import AlmacenLocal, PREFIJO_DEFAULT
from obras.services.nomina_service import LibroNominas
from obras.services.obra_service import RegistroObras
from obras.services.usuario_service import RegistroUsuarios


class Command(BaseCommand):
    help = "Crea el administrador por defecto y, con --demo, una obra y una nómina de ejemplo."

    def add_arguments(self, parser):
        parser.add_argument("--demo", action="store_true", help="Carga datos de ejemplo.")
        parser.add_argument("--prefijo", default=PREFIJO_DEFAULT, help="Prefijo de las colecciones.")

    def handle(self, *args, **options):
        almacen = AlmacenLocal(prefijo=options["prefijo"])
        usuarios = RegistroUsuarios(almacen)

        admin = usuarios.asegurar_admin_por_defecto()
        if admin:
            self.stdout.write(self.style.SUCCESS(f"Administrador '{admin['username']}' creado."))
        else:
            self.stdout.write("Ya existen cuentas; no se creó el administrador por defecto.")

        if not options["demo"]:
            return

        if usuarios.buscar_activo("residente1"):
            self.stdout.write(self.style.WARNING("Los datos demo ya estaban cargados."))
            return

        residente = usuarios.crear(
            username="residente1", password="residente123", role=Rol.RESIDENTE.value, name="Ing. Carlos Ruiz",
        )
        usuarios.crear(
            username="contadora1", password="contadora123", role=Rol.CONTADORA.value, name="C.P. Laura Méndez",
        )

        hoy = timezone.localdate()
        obra = RegistroObras(almacen).crear(
            nombre="Puente Norte",
            ubicacion="Km 12 carretera federal",
            fecha_inicio=hoy - datetime.timedelta(days=30),
            fecha_termino=hoy + datetime.timedelta(days=150),
            residente_id=residente["id"],
            presupuesto_total=1_500_000,
        )

        lunes = hoy - datetime.timedelta(days=hoy.weekday() + 7)
        LibroNominas(almacen).crear(
            usuario=residente,
            obra_id=obra["id"],
            semana_del=lunes,
            semana_al=lunes + datetime.timedelta(days=6),
            empleados=[
                {"nombre": "Juan Pérez", "puesto": "Albañil", "salarioDiario": 500,
                 "dias": {"lun": 1, "mar": 1, "mie": 1, "jue": 1, "vie": 1}},
                {"nombre": "Pedro López", "puesto": "Peón", "salarioDiario": 350,
                 "dias": {"lun": 1, "mar": 1, "mie": 1, "jue": 1, "vie": 1, "sab": 1}},
            ],
        )

        self.stdout.write(self.style.SUCCESS("✅ Seed listo: obra 'Puente Norte' con una nómina pendiente."))
