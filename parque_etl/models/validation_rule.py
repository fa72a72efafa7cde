"""ValidationRule model — configurable, data-driven field check."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from parque_etl.database import Base
from parque_etl.models.etl_job import utcnow
from parque_etl.normalizers.base import clean_text
from parque_etl.normalizers.categorical import normalize_cpu_speed_ghz
from parque_etl.normalizers.memory import normalize_ram

logger = logging.getLogger(__name__)

_NAVEGADORES_SOPORTADOS = ("Chrome", "Firefox", "Edge")


def _to_number(valor: Any) -> float | None:
    if isinstance(valor, bool):
        return None
    if isinstance(valor, (int, float)):
        return float(valor)
    match = re.search(r"-?\d+(?:[.,]\d+)?", clean_text(valor))
    return float(match.group(0).replace(",", ".")) if match else None


def _vacio(valor: Any) -> bool:
    return valor is None or (isinstance(valor, str) and not valor.strip())


class ValidationRule(Base):
    """Catalogue entry describing one check on one record field.

    ``tipo_validacion`` picks the evaluation strategy and ``operador`` the
    comparison used by RANGE, BUSINESS and CUSTOM rules.  Scoping lists
    (``proveedores_especificos``, ``sitios_especificos``) restrict the rule
    to some suppliers or sites; an empty list means "everywhere".

    Attributes:
        codigo_regla: Unique code, e.g. ``RAM_MINIMA_WINDOWS``.
        campo_objetivo: Record field the rule reads.
        logica_correccion: ``{"tipo": NORMALIZACION_RAM | NORMALIZACION_CPU |
            LIMPIEZA_TEXTO | CONVERSION_NUMERICA}`` used when
            ``auto_correccion`` is on.
        veces_aplicada / veces_fallida: Monotonic usage counters.
    """

    __tablename__ = "validation_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    nombre = Column(String(100), nullable=False)
    codigo_regla = Column(String(50), nullable=False, unique=True)
    descripcion = Column(Text, nullable=True)
    campo_objetivo = Column(String(100), nullable=False, index=True)

    tipo_validacion = Column(String(20), nullable=False)
    operador = Column(String(20), nullable=True)
    valor_esperado = Column(JSON, nullable=True)
    valor_minimo = Column(JSON, nullable=True)
    valor_maximo = Column(JSON, nullable=True)

    severidad = Column(String(10), nullable=False, default="ERROR")
    bloquea_procesamiento = Column(Boolean, nullable=False, default=True)
    mensaje_error = Column(Text, nullable=False)
    mensaje_sugerencia = Column(Text, nullable=True)

    activa = Column(Boolean, nullable=False, default=True, index=True)
    aplicar_en = Column(String(20), nullable=False, default="SIEMPRE")
    proveedores_especificos = Column(JSON, nullable=True)
    sitios_especificos = Column(JSON, nullable=True)
    campos_dependientes = Column(JSON, nullable=True)

    auto_correccion = Column(Boolean, nullable=False, default=False)
    logica_correccion = Column(JSON, nullable=True)

    categoria = Column(String(20), nullable=False, index=True)
    version = Column(String(20), nullable=False, default="1.0")
    creado_por = Column(String(50), nullable=True)
    modificado_por = Column(String(50), nullable=True)

    veces_aplicada = Column(Integer, nullable=False, default=0)
    veces_fallida = Column(Integer, nullable=False, default=0)
    ultima_aplicacion = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def debe_aplicarse(self, contexto: dict[str, Any]) -> bool:
        """False when the rule is inactive or scoped away from this record."""
        if self.activa is False:
            return False
        proveedores = self.proveedores_especificos or []
        if proveedores and contexto.get("proveedor") not in proveedores:
            return False
        sitios = self.sitios_especificos or []
        if sitios and contexto.get("sitio") not in sitios:
            return False
        return True

    def aplicar_regla(self, valor: Any, contexto: dict[str, Any] | None = None) -> dict[str, Any]:
        """Evaluate ``valor`` and update the usage counters.

        ``veces_aplicada`` grows on every call; ``veces_fallida`` grows when
        the value fails (or the evaluation raises, which is re-raised).
        """
        self.veces_aplicada = (self.veces_aplicada or 0) + 1
        self.ultima_aplicacion = utcnow()
        try:
            resultado = self.validar_valor(valor, contexto)
        except Exception:
            self.veces_fallida = (self.veces_fallida or 0) + 1
            raise
        if not resultado["valido"]:
            self.veces_fallida = (self.veces_fallida or 0) + 1
        return resultado

    def validar_valor(self, valor: Any, contexto: dict[str, Any] | None = None) -> dict[str, Any]:
        """Evaluate ``valor`` against the rule without touching counters.

        Returns:
            ``{"valido", "omitida", "valor_original", "valor_corregido",
            "regla_aplicada", "mensaje", "sugerencia", "severidad",
            "bloquea_procesamiento"}``.  Out-of-scope rules return
            ``valido=True, omitida=True``.
        """
        contexto = contexto or {}
        if not self.debe_aplicarse(contexto):
            return {
                "valido": True,
                "omitida": True,
                "razon": "Condiciones de aplicación no cumplidas",
                "regla_aplicada": self.codigo_regla,
            }

        valido = self._evaluar(valor, contexto)
        corregido = None
        if not valido and self.auto_correccion and self.logica_correccion:
            corregido = self.aplicar_auto_correccion(valor)
            if corregido is not None:
                valido = self._evaluar(corregido, contexto)

        return {
            "valido": valido,
            "omitida": False,
            "valor_original": valor,
            "valor_corregido": corregido,
            "regla_aplicada": self.codigo_regla,
            "mensaje": None if valido else self.mensaje_error,
            "sugerencia": None if valido else self.mensaje_sugerencia,
            "severidad": self.severidad,
            "bloquea_procesamiento": bool(self.bloquea_procesamiento) and not valido,
        }

    def _evaluar(self, valor: Any, contexto: dict[str, Any]) -> bool:
        tipo = self.tipo_validacion
        if tipo == "REQUIRED":
            return not _vacio(valor)
        if tipo == "TYPE":
            return self._validar_tipo(valor)
        if tipo == "RANGE":
            return self._validar_rango(valor)
        if tipo == "ENUM":
            return valor in (self.valor_esperado or [])
        if tipo == "PATTERN":
            if not self.valor_esperado:
                return True
            return re.search(str(self.valor_esperado), clean_text(valor)) is not None
        if tipo == "BUSINESS":
            return self._validar_negocio(valor, contexto)
        if tipo == "DEPENDENCY":
            return all(not _vacio(contexto.get(campo)) for campo in self.campos_dependientes or [])
        if tipo == "CUSTOM":
            return self.comparar(valor)
        return True

    def _validar_tipo(self, valor: Any) -> bool:
        esperado = self.valor_esperado
        if esperado == "string":
            return isinstance(valor, str)
        if esperado == "number":
            return isinstance(valor, (int, float)) and not isinstance(valor, bool) and valor == valor
        if esperado == "integer":
            return isinstance(valor, int) and not isinstance(valor, bool)
        if esperado == "boolean":
            return isinstance(valor, bool)
        if esperado == "date":
            if isinstance(valor, (date, datetime)):
                return True
            try:
                date.fromisoformat(clean_text(valor)[:10])
            except ValueError:
                return False
            return True
        return True

    def _validar_rango(self, valor: Any) -> bool:
        numero = _to_number(valor)
        if numero is None:
            return False
        if self.valor_minimo is not None and numero < float(self.valor_minimo):
            return False
        if self.valor_maximo is not None and numero > float(self.valor_maximo):
            return False
        return True

    def _validar_negocio(self, valor: Any, contexto: dict[str, Any]) -> bool:
        codigo = self.codigo_regla
        if codigo == "RAM_MINIMA_WINDOWS":
            if "windows" not in clean_text(contexto.get("os_name")).lower():
                return True
            numero = _to_number(valor)
            return numero is not None and numero >= 4
        if codigo == "CPU_MINIMA_PERFORMANCE":
            numero = _to_number(valor)
            return numero is not None and numero >= 2.0
        if codigo == "NAVEGADOR_SOPORTADO":
            return valor in _NAVEGADORES_SOPORTADOS
        if isinstance(self.valor_esperado, dict) and "umbrales" in self.valor_esperado:
            # Threshold selected by a context field, e.g. RAM per atencion
            esperado = self.valor_esperado
            clave = contexto.get(esperado.get("contexto") or "")
            umbral = (esperado.get("umbrales") or {}).get(clave, esperado.get("defecto"))
            numero = _to_number(valor)
            return umbral is None or (numero is not None and numero >= float(umbral))
        if self.operador:
            return self.comparar(valor)
        return True

    def comparar(self, valor: Any) -> bool:
        """Apply ``operador`` between ``valor`` and the expected value(s)."""
        operador = self.operador
        esperado = self.valor_esperado
        if operador in (None, "EQUALS"):
            return valor == esperado
        if operador == "NOT_EQUALS":
            return valor != esperado
        if operador in ("IN", "NOT_IN"):
            dentro = valor in (esperado or [])
            return dentro if operador == "IN" else not dentro
        if operador in ("CONTAINS", "NOT_CONTAINS"):
            contiene = clean_text(esperado).lower() in clean_text(valor).lower()
            return contiene if operador == "CONTAINS" else not contiene
        if operador == "REGEX":
            return re.search(str(esperado or ""), clean_text(valor)) is not None
        if operador == "BETWEEN":
            return self._validar_rango(valor)

        numero = _to_number(valor)
        referencia = _to_number(esperado if esperado is not None else self.valor_minimo)
        if numero is None or referencia is None:
            return False
        if operador == "GREATER_THAN":
            return numero > referencia
        if operador == "GREATER_EQUAL":
            return numero >= referencia
        if operador == "LESS_THAN":
            return numero < referencia
        if operador == "LESS_EQUAL":
            return numero <= referencia
        raise ValueError(f"Operador desconocido: {operador}")

    def aplicar_auto_correccion(self, valor: Any) -> Any:
        """Corrected value, or ``None`` when no correction applies."""
        tipo = (self.logica_correccion or {}).get("tipo")
        if tipo == "NORMALIZACION_RAM":
            capacidad = normalize_ram(clean_text(valor)).capacity_gb
            return capacidad or None
        if tipo == "NORMALIZACION_CPU":
            return normalize_cpu_speed_ghz(valor)
        if tipo == "LIMPIEZA_TEXTO":
            texto = clean_text(valor).lower()
            return texto or None
        if tipo == "CONVERSION_NUMERICA":
            return _to_number(valor)
        logger.debug("Regla %s: corrección %r no soportada", self.codigo_regla, tipo)
        return None

    def __repr__(self) -> str:
        return f"<ValidationRule {self.codigo_regla} activa={self.activa}>"
