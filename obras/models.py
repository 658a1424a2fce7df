from django.db import models


# ============================================================
# Base
# ============================================================
class TimeStampedModel(models.Model):
    creado_en = models.DateTimeField(auto_now_add=True)
    actualizado_en = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


# ============================================================
# Catálogos (los valores son los que se guardan en los registros JSON)
# ============================================================
class Rol(models.TextChoices):
    ADMIN = "admin", "Administrador"
    RESIDENTE = "residente", "Residente de Obra"
    CONTADORA = "contadora", "Contadora"


class EstadoObra(models.TextChoices):
    ACTIVA = "activa", "Activa"
    TERMINADA = "terminada", "Terminada"
    CANCELADA = "cancelada", "Cancelada"


class Ambito(models.TextChoices):
    PUBLICA = "publica", "Pública"
    PRIVADA = "privada", "Privada"


class TipoRecurso(models.TextChoices):
    PROPIO = "propio", "Recurso propio"
    FINANCIAMIENTO = "financiamiento", "Financiamiento"
    PRESTAMO = "prestamo", "Préstamo"


class EstadoNomina(models.TextChoices):
    PENDIENTE = "pendiente", "Pendiente"
    VALIDADA = "validada", "Validada"
    AUTORIZADA = "autorizada", "Autorizada"
    PAGADA = "pagada", "Pagada"


class TipoDocumento(models.TextChoices):
    CONTRATO = "contrato", "Contrato"
    PRESUPUESTO = "presupuesto", "Presupuesto"
    FACTURA = "factura", "Factura"
    ORDEN_COMPRA = "orden_compra", "Orden de Compra"
    CAJA_CHICA = "caja_chica", "Caja Chica"
    NOTA_MATERIALES = "nota_materiales", "Nota de Materiales"
    OTRO = "otro", "Otro"


class TipoAlerta(models.TextChoices):
    CRITICO = "critico", "Crítico"
    ADVERTENCIA = "advertencia", "Advertencia"
    INFO = "info", "Info"


# ============================================================
# Almacén clave-valor: una fila por colección
# ============================================================
class ColeccionPersistida(TimeStampedModel):
    """
    Slot durable con nombre. `contenido` guarda el JSON completo de la
    colección (una lista de registros, o un objeto para la sesión).
    """
    nombre = models.CharField(max_length=80, unique=True)
    contenido = models.TextField(blank=True, default="")

    class Meta:
        verbose_name = "Colección persistida"
        verbose_name_plural = "Colecciones persistidas"
        ordering = ["nombre"]

    def __str__(self):
        return self.nombre
