"""
ValidationRule catalogue.

Seeds the catalogue with the rules the pipeline actually applies (the
compliance policies of ``validators.policy`` plus the legacy baseline
checks) and exposes lookup and statistics helpers.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from parque_etl.models.validation_rule import ValidationRule
from parque_etl.utils.constants import (
    CATEGORIAS_REGLA,
    OPERADORES,
    TIPOS_CORRECCION,
    TIPOS_VALIDACION,
)
from parque_etl.validators.policy import all_policy_rules

logger = logging.getLogger(__name__)

# Baseline checks kept alongside the policies
_REGLAS_BASE: list[dict[str, Any]] = [
    {
        "nombre": "RAM Mínima para Windows",
        "codigo_regla": "RAM_MINIMA_WINDOWS",
        "descripcion": "Verifica que equipos con Windows tengan al menos 4GB de RAM",
        "campo_objetivo": "ram_gb",
        "tipo_validacion": "BUSINESS",
        "operador": "GREATER_EQUAL",
        "valor_minimo": 4,
        "severidad": "ERROR",
        "mensaje_error": "RAM insuficiente para Windows (mínimo 4GB)",
        "mensaje_sugerencia": "Considerar upgrade de memoria",
        "categoria": "HARDWARE",
        "auto_correccion": True,
        "logica_correccion": {"tipo": "NORMALIZACION_RAM"},
    },
    {
        "nombre": "CPU Mínima Performance",
        "codigo_regla": "CPU_MINIMA_PERFORMANCE",
        "descripcion": "Verifica velocidad mínima de CPU",
        "campo_objetivo": "cpu_speed_ghz",
        "tipo_validacion": "RANGE",
        "operador": "GREATER_EQUAL",
        "valor_minimo": 2.0,
        "severidad": "WARNING",
        "bloquea_procesamiento": False,
        "mensaje_error": "CPU por debajo del rendimiento recomendado",
        "mensaje_sugerencia": "Verificar performance en aplicaciones críticas",
        "categoria": "HARDWARE",
        "auto_correccion": True,
        "logica_correccion": {"tipo": "NORMALIZACION_CPU"},
    },
    {
        "nombre": "Navegador Soportado",
        "codigo_regla": "NAVEGADOR_SOPORTADO",
        "descripcion": "Verifica que el navegador esté en la lista de soportados",
        "campo_objetivo": "browser_name",
        "tipo_validacion": "ENUM",
        "operador": "IN",
        "valor_esperado": ["Chrome", "Firefox", "Edge"],
        "severidad": "ERROR",
        "mensaje_error": "Navegador no soportado",
        "mensaje_sugerencia": "Instalar Chrome, Firefox o Edge",
        "categoria": "SOFTWARE",
    },
]


def reglas_por_defecto() -> list[dict[str, Any]]:
    """Column values of every default rule, baseline checks first."""
    reglas = [dict(r) for r in _REGLAS_BASE]
    for policy in all_policy_rules():
        kwargs = policy.as_rule_kwargs()
        kwargs["descripcion"] = f"Política de cumplimiento sobre {policy.campo}"
        reglas.append(kwargs)
    return reglas


def _validar_definicion(data: dict[str, Any]) -> None:
    """Check the enumerated columns of a rule definition.

    Raises:
        ValueError: A value outside its catalogue list.
    """
    for campo, validos in (
        ("tipo_validacion", TIPOS_VALIDACION),
        ("categoria", CATEGORIAS_REGLA),
    ):
        if data.get(campo) not in validos:
            raise ValueError(f"{campo} '{data.get(campo)}' inválido. Valores válidos: {validos}.")
    operador = data.get("operador")
    if operador is not None and operador not in OPERADORES:
        raise ValueError(f"operador '{operador}' inválido. Valores válidos: {OPERADORES}.")
    correccion = (data.get("logica_correccion") or {}).get("tipo")
    if correccion is not None and correccion not in TIPOS_CORRECCION:
        raise ValueError(
            f"logica_correccion '{correccion}' inválida. Valores válidos: {TIPOS_CORRECCION}."
        )


def crear_regla(db: Session, data: dict[str, Any], usuario_id: str | None = None) -> ValidationRule:
    """Create one catalogue rule.

    Args:
        db: Active SQLAlchemy session.
        data: Column values of the rule.
        usuario_id: Recorded as ``creado_por``.

    Returns:
        The freshly created and refreshed ``ValidationRule``.

    Raises:
        ValueError: Enumerated values outside the catalogue, or
            ``codigo_regla`` already in use.
    """
    _validar_definicion(data)
    existing = (
        db.query(ValidationRule.id)
        .filter(ValidationRule.codigo_regla == data.get("codigo_regla"))
        .first()
    )
    if existing is not None:
        raise ValueError(f"Ya existe una regla con código '{data.get('codigo_regla')}'.")

    regla = ValidationRule(**data, creado_por=usuario_id)
    db.add(regla)
    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("crear_regla: commit failed — rolling back")
        raise
    db.refresh(regla)

    logger.info("crear_regla: regla %s creada", regla.codigo_regla)
    return regla


def crear_reglas_por_defecto(db: Session, usuario_id: str | None = None) -> list[ValidationRule]:
    """Insert the default rules whose ``codigo_regla`` is not yet present.

    Returns:
        The newly created rules (empty on a second run).
    """
    existentes = {codigo for (codigo,) in db.query(ValidationRule.codigo_regla).all()}
    creadas: list[ValidationRule] = []
    for data in reglas_por_defecto():
        if data["codigo_regla"] in existentes:
            continue
        _validar_definicion(data)
        regla = ValidationRule(**data, creado_por=usuario_id)
        db.add(regla)
        existentes.add(data["codigo_regla"])
        creadas.append(regla)

    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("crear_reglas_por_defecto: commit failed — rolling back")
        raise

    logger.info("crear_reglas_por_defecto: %d reglas creadas", len(creadas))
    return creadas


def obtener_reglas_para_campo(
    db: Session,
    campo: str,
    categoria: str | None = None,
) -> list[ValidationRule]:
    """Active rules targeting ``campo``, ERROR before WARNING before INFO."""
    q = db.query(ValidationRule).filter(
        ValidationRule.campo_objetivo == campo,
        ValidationRule.activa.is_(True),
    )
    if categoria:
        q = q.filter(ValidationRule.categoria == categoria)
    reglas = q.order_by(ValidationRule.codigo_regla).all()
    orden = {"ERROR": 0, "WARNING": 1, "INFO": 2}
    return sorted(reglas, key=lambda r: orden.get(r.severidad, 3))


def aplicar_reglas(
    db: Session,
    record: dict[str, Any],
    campos: list[str] | None = None,
) -> list[dict[str, Any]]:
    """Run the active catalogue rules against one record.

    Usage counters of each applied rule are updated and committed.

    Returns:
        Results of the rules that were in scope and failed.
    """
    q = db.query(ValidationRule).filter(ValidationRule.activa.is_(True))
    if campos:
        q = q.filter(ValidationRule.campo_objetivo.in_(campos))

    fallidas: list[dict[str, Any]] = []
    for regla in q.order_by(ValidationRule.codigo_regla).all():
        if not regla.debe_aplicarse(record):
            continue
        resultado = regla.aplicar_regla(record.get(regla.campo_objetivo), record)
        if not resultado["valido"]:
            fallidas.append(resultado)

    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("aplicar_reglas: commit failed — rolling back")
        raise
    return fallidas


def corregir_registros(db: Session, records: list[dict[str, Any]]) -> int:
    """Apply the auto-correcting catalogue rules to processed records in place.

    A field is overwritten only when the corrected value passes the rule;
    each correction is noted in the record's ``informacion``.

    Returns:
        Number of fields corrected.
    """
    reglas = (
        db.query(ValidationRule)
        .filter(ValidationRule.activa.is_(True), ValidationRule.auto_correccion.is_(True))
        .order_by(ValidationRule.codigo_regla)
        .all()
    )
    if not reglas:
        return 0

    corregidos = 0
    for record in records:
        for regla in reglas:
            campo = regla.campo_objetivo
            if campo not in record or not regla.debe_aplicarse(record):
                continue
            resultado = regla.aplicar_regla(record[campo], record)
            corregido = resultado.get("valor_corregido")
            if not resultado["valido"] or corregido is None or corregido == record[campo]:
                continue
            record["informacion"] = [
                *record.get("informacion", []),
                {
                    "campo": campo,
                    "regla": regla.codigo_regla,
                    "mensaje": f"Valor corregido automáticamente: {record[campo]!r} → {corregido!r}",
                },
            ]
            record[campo] = corregido
            corregidos += 1

    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("corregir_registros: commit failed — rolling back")
        raise
    logger.info("corregir_registros: %d campos corregidos en %d registros", corregidos, len(records))
    return corregidos


def obtener_estadisticas(db: Session) -> dict[str, Any]:
    """Rule counts overall, active, per category and per severity."""
    total: int = db.query(ValidationRule).count()
    activas: int = db.query(ValidationRule).filter(ValidationRule.activa.is_(True)).count()

    por_categoria = {
        row.categoria: row.cnt
        for row in db.query(
            ValidationRule.categoria.label("categoria"),
            func.count(ValidationRule.id).label("cnt"),
        )
        .group_by(ValidationRule.categoria)
        .all()
    }
    por_severidad = {
        row.severidad: row.cnt
        for row in db.query(
            ValidationRule.severidad.label("severidad"),
            func.count(ValidationRule.id).label("cnt"),
        )
        .filter(ValidationRule.activa.is_(True))
        .group_by(ValidationRule.severidad)
        .all()
    }
    return {
        "total_reglas": total,
        "reglas_activas": activas,
        "por_categoria": por_categoria,
        "por_severidad": por_severidad,
    }
