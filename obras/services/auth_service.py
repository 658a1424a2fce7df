from __future__ import annotations

import logging

from django.utils import timezone

from .usuario_service import RegistroUsuarios

logger = logging.getLogger(__name__)


def snapshot_usuario(usuario: dict) -> dict:
    """Copia del usuario para la sesión, sin la contraseña."""
    return {k: v for k, v in usuario.items() if k != "password"}


class ServicioSesion:
    """Login por coincidencia exacta contra una cuenta activa del mismo rol."""

    def __init__(self, almacen):
        self.almacen = almacen
        self.usuarios = RegistroUsuarios(almacen)

    def login(self, username, password, rol) -> bool:
        username = (username or "").strip()
        encontrado = next(
            (
                u for u in self.usuarios.listar()
                if u.get("username") == username
                and u.get("password") == password
                and u.get("role") == rol
                and u.get("isActive")
            ),
            None,
        )
        if not encontrado:
            logger.warning("Login fallido para '%s' (%s)", username, rol)
            return False

        self.almacen.sesion.save({
            "user": snapshot_usuario(encontrado),
            "timestamp": int(timezone.now().timestamp() * 1000),
        })
        logger.info("Login de '%s' (%s)", username, rol)
        return True

    def logout(self) -> None:
        self.almacen.sesion.clear()

    def usuario_actual(self) -> dict | None:
        """
        Usuario de la sesión, releído del registro: si la cuenta ya no existe
        o fue desactivada, la sesión se cierra.
        """
        registro = self.almacen.sesion.load()
        if not registro or not registro.get("user"):
            return None

        usuario = self.usuarios.buscar(registro["user"].get("id"))
        if not usuario or not usuario.get("isActive"):
            self.logout()
            return None
        return snapshot_usuario(usuario)
