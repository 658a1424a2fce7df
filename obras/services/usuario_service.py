from __future__ import annotations

import logging

from django.conf import settings
from django.db import transaction

from obras.domain.exceptions import ValidationError
from obras.models import Rol
from .base import RegistroColeccion

logger = logging.getLogger(__name__)

CAMPOS_EDITABLES = ("username", "password", "role", "name", "email", "phone", "isActive")


class RegistroUsuarios(RegistroColeccion):
    prefijo_id = "user"
    entidad = "Usuario"

    def __init__(self, almacen):
        super().__init__(almacen, almacen.usuarios)

    def _validar(self, datos: dict, registros: list[dict], excluir_id=None) -> dict:
        datos = dict(datos)
        datos["username"] = (datos.get("username") or "").strip()
        datos["name"] = (datos.get("name") or "").strip()

        if not datos["username"]:
            raise ValidationError("El usuario es obligatorio.", code="username_requerido")
        if not datos.get("password"):
            raise ValidationError("La contraseña es obligatoria.", code="password_requerido")
        if datos.get("role") not in Rol.values:
            raise ValidationError(f"Rol '{datos.get('role')}' no válido.", code="rol_invalido")
        if not datos["name"]:
            raise ValidationError("El nombre es obligatorio.", code="nombre_requerido")

        # username único entre cuentas activas
        if datos.get("isActive"):
            duplicado = any(
                r.get("isActive") and r.get("username") == datos["username"] and r.get("id") != excluir_id
                for r in registros
            )
            if duplicado:
                raise ValidationError(
                    f"Ya existe una cuenta activa con el usuario '{datos['username']}'.",
                    code="username_duplicado",
                )
        return datos

    @transaction.atomic
    def crear(self, *, username, password, role, name, email="", phone="", is_active=True) -> dict:
        registros = self._cargar_para_escribir()
        datos = self._validar(
            {
                "username": username,
                "password": password,
                "role": role,
                "name": name,
                "email": email or "",
                "phone": phone or "",
                "isActive": bool(is_active),
            },
            registros,
        )
        return self._insertar(registros, datos)

    @transaction.atomic
    def actualizar(self, usuario_id, **cambios) -> dict:
        desconocidos = set(cambios) - set(CAMPOS_EDITABLES)
        if desconocidos:
            raise ValidationError(f"Campos no editables: {sorted(desconocidos)}.", code="campo_no_editable")

        registros = self._cargar_para_escribir()
        indice = self._indice(registros, usuario_id)
        datos = self._validar({**registros[indice], **cambios}, registros, excluir_id=usuario_id)
        return self._reemplazar(registros, indice, {k: datos[k] for k in cambios})

    def reset_password(self, usuario_id, nueva_password) -> bool:
        if not nueva_password:
            raise ValidationError("La nueva contraseña no puede estar vacía.", code="password_requerido")
        self.actualizar(usuario_id, password=nueva_password)
        logger.info("Contraseña restablecida para %s", usuario_id)
        return True

    def listar_por_rol(self, rol) -> list[dict]:
        return [u for u in self.listar(role=rol) if u.get("isActive")]

    def buscar_activo(self, username) -> dict | None:
        return next(
            (u for u in self.listar(username=username) if u.get("isActive")),
            None,
        )

    @transaction.atomic
    def asegurar_admin_por_defecto(self) -> dict | None:
        """Primer arranque: si no hay cuentas, crea el administrador por defecto."""
        registros = self._cargar_para_escribir()
        if registros:
            return None

        conf = settings.OBRAS_ADMIN_POR_DEFECTO
        admin = self._insertar(registros, {
            "username": conf["username"],
            "password": conf["password"],
            "role": Rol.ADMIN.value,
            "name": conf.get("name", "Administrador"),
            "email": conf.get("email", ""),
            "phone": "",
            "isActive": True,
        })
        logger.warning("Se creó el administrador por defecto '%s'; cambia su contraseña.", admin["username"])
        return admin
