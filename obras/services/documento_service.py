from __future__ import annotations

import base64
import binascii
import logging
import mimetypes
import os

from django.conf import settings
from django.db import transaction

from obras.domain.exceptions import StorageError, ValidationError
from obras.models import TipoDocumento
from .base import RegistroColeccion, ahora
from .obra_service import RegistroObras

logger = logging.getLogger(__name__)


def leer_archivo(archivo) -> bytes:
    """
    Lee el contenido completo del archivo (bytes, UploadedFile o file-like).
    Si la lectura falla la excepción sube tal cual y no se guarda nada.
    """
    if isinstance(archivo, (bytes, bytearray)):
        return bytes(archivo)
    if hasattr(archivo, "chunks"):
        return b"".join(archivo.chunks())
    return archivo.read()


def _validar_tamano(size) -> None:
    maximo = settings.OBRAS_MAX_DOCUMENTO_BYTES
    if size is not None and size > maximo:
        raise ValidationError(
            f"El archivo pesa {size} bytes; el máximo es {maximo}.",
            code="archivo_muy_grande",
        )


class RegistroDocumentos(RegistroColeccion):
    prefijo_id = "doc"
    entidad = "Documento"

    def __init__(self, almacen):
        super().__init__(almacen, almacen.documentos)
        self.obras = RegistroObras(almacen)

    def subir(self, *, obra_id, tipo, archivo, subido_por, nombre="", file_name=None) -> dict:
        if tipo not in TipoDocumento.values:
            raise ValidationError(f"Tipo de documento '{tipo}' no válido.", code="tipo_invalido")
        if not (subido_por or "").strip():
            raise ValidationError("Falta quién sube el documento.", code="uploader_requerido")
        self.obras.obtener(obra_id)

        # UploadedFile trae su tamaño: se rechaza antes de leerlo a memoria
        _validar_tamano(getattr(archivo, "size", None))
        contenido = leer_archivo(archivo)
        _validar_tamano(len(contenido))

        file_name = os.path.basename(file_name or getattr(archivo, "name", "") or "archivo")
        mime = (
            getattr(archivo, "content_type", None)
            or mimetypes.guess_type(file_name)[0]
            or "application/octet-stream"
        )
        nombre = (nombre or "").strip() or file_name.split(".")[0]

        with transaction.atomic():
            registros = self._cargar_para_escribir()
            documento = self._insertar(registros, {
                "obraId": obra_id,
                "tipo": tipo,
                "nombre": nombre,
                "fileName": file_name,
                "mimeType": mime,
                "size": len(contenido),
                "fileData": f"data:{mime};base64,{base64.b64encode(contenido).decode('ascii')}",
                "uploadedAt": ahora(),
                "uploadedBy": subido_por.strip(),
            })
        return documento

    def listar_por_obra(self, obra_id) -> list[dict]:
        return self.listar(obraId=obra_id)

    def listar_por_tipo(self, obra_id, tipo) -> list[dict]:
        return self.listar(obraId=obra_id, tipo=tipo)

    def descargar(self, documento_id) -> tuple[dict, bytes]:
        documento = self.obtener(documento_id)
        _, separador, carga = (documento.get("fileData") or "").partition("base64,")
        if not separador:
            raise StorageError(f"El documento '{documento_id}' no tiene contenido base64.")
        try:
            return documento, base64.b64decode(carga, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise StorageError(f"El contenido del documento '{documento_id}' está dañado: {exc}") from exc
