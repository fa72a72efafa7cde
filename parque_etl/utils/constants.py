"""
Application-wide constants for the Parque Informático ETL.

Defines domain enumerations, compliance thresholds, and lookup lists
used across normalizers, validators, services, and models.
"""

from typing import Final

# ---------------------------------------------------------------------------
# Attention (tipo de atención)
# ---------------------------------------------------------------------------

TIPOS_ATENCION: Final[list[str]] = [
    "INBOUND",
    "OUTBOUND",
    "MIXTO",
    "CHAT",
    "EMAIL",
    "SOPORTE",
]

# Default attention when the cell carries an unrecognised value
ATENCION_DEFAULT: Final[str] = "MIXTO"

# ---------------------------------------------------------------------------
# Hardware / software vocabularies
# ---------------------------------------------------------------------------

CPU_BRANDS: Final[list[str]] = ["Intel", "AMD", "Apple", "Otro"]

RAM_TYPES: Final[list[str]] = ["DDR", "DDR2", "DDR3", "DDR4", "DDR5"]

DISK_TYPES: Final[list[str]] = ["HDD", "SSD", "NVMe", "eMMC", "Desconocido"]

OS_NAMES: Final[list[str]] = [
    "Windows 10",
    "Windows 11",
    "macOS",
    "Linux",
    "Chrome OS",
    "Otro",
]

OS_ARCHITECTURES: Final[list[str]] = ["x64", "x86", "ARM64"]

BROWSER_NAMES: Final[list[str]] = [
    "Chrome",
    "Firefox",
    "Edge",
    "Safari",
    "Opera",
    "Internet Explorer",
    "Otro",
]

CONNECTION_TYPES: Final[list[str]] = [
    "Fibra",
    "Cable",
    "DSL",
    "Satelital",
    "Móvil 4G",
    "Móvil 5G",
    "Otro",
]

HEADSET_TYPES: Final[list[str]] = ["USB", "Jack 3.5mm", "Bluetooth", "Inalámbrico", "Otro"]

# ---------------------------------------------------------------------------
# Commercial capacity tables
# ---------------------------------------------------------------------------

RAM_COMMERCIAL_GB: Final[list[int]] = [2, 4, 6, 8, 12, 16, 24, 32, 48, 64, 96, 128, 256, 512]

STORAGE_COMMERCIAL_GB: Final[list[int]] = [
    16, 32, 60, 64, 120, 128, 240, 250, 256, 320, 480, 500, 512,
    640, 750, 1000, 1024, 2000, 2048, 3000, 4000,
]

# ---------------------------------------------------------------------------
# Compliance thresholds (per-component verdicts)
# ---------------------------------------------------------------------------

RAM_MIN_GB: Final[int] = 16
STORAGE_MIN_GB: Final[int] = 500
CPU_I5_MIN_GENERATION: Final[int] = 8
CPU_I5_MIN_GHZ: Final[float] = 3.0
CPU_RYZEN5_MIN_GHZ: Final[float] = 3.7
OS_REQUERIDO: Final[str] = "Windows 11"

# Internet speed required for remote work (Mbps)
VELOCIDAD_MIN_BAJADA_MBPS: Final[float] = 15
VELOCIDAD_MIN_SUBIDA_MBPS: Final[float] = 6

# ---------------------------------------------------------------------------
# Business-rule thresholds by attention
# ---------------------------------------------------------------------------

RAM_MINIMA_POR_ATENCION: Final[dict[str, int]] = {
    "INBOUND": 4,
    "OUTBOUND": 4,
    "EMAIL": 4,
    "MIXTO": 6,
    "CHAT": 6,
    "SOPORTE": 8,
}

# (bajada, subida) in Mbps
CONECTIVIDAD_MINIMA_POR_ATENCION: Final[dict[str, tuple[int, int]]] = {
    "INBOUND": (10, 5),
    "OUTBOUND": (10, 5),
    "EMAIL": (10, 5),
    "MIXTO": (15, 8),
    "CHAT": (20, 10),
    "SOPORTE": (25, 15),
}

ATENCIONES_CON_HEADSET: Final[list[str]] = ["INBOUND", "OUTBOUND", "MIXTO", "SOPORTE"]

BROWSER_VERSION_MINIMA: Final[dict[str, int]] = {
    "Chrome": 90,
    "Firefox": 88,
    "Edge": 90,
    "Safari": 14,
}

OS_NO_SOPORTADOS: Final[list[str]] = ["Windows 7", "Windows 8", "Windows XP"]
OS_DEPRECADOS: Final[list[str]] = ["Windows 8.1"]

CPU_VELOCIDAD_MINIMA_GHZ: Final[float] = 2.0
CPU_NUCLEOS_MINIMOS: Final[int] = 2
DISCO_MINIMO_GB: Final[int] = 100
DISCO_HDD_RECOMENDADO_GB: Final[int] = 250

# Recommendations are issued once a category accumulates this many findings
UMBRAL_RECOMENDACION: Final[int] = 5

# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

PENALIZACION_ERROR: Final[int] = 15
PENALIZACION_ADVERTENCIA: Final[int] = 5
PENALIZACION_COMPONENTE: Final[int] = 25

# (umbral mínimo, nivel) ordered from highest to lowest
NIVELES_CUMPLIMIENTO: Final[list[tuple[float, str]]] = [
    (90, "EXCELENTE"),
    (80, "BUENO"),
    (70, "ACEPTABLE"),
    (50, "DEFICIENTE"),
    (0, "CRITICO"),
]

# ---------------------------------------------------------------------------
# Record lifecycle
# ---------------------------------------------------------------------------

ESTADOS_ETL_REGISTRO: Final[list[str]] = [
    "PROCESANDO",
    "VALIDADO",
    "ERROR",
    "DUPLICADO",
    "INCOMPLETO",
]

# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------

ESTADOS_JOB: Final[list[str]] = [
    "INICIADO",
    "PARSEANDO",
    "NORMALIZANDO",
    "VALIDANDO",
    "SCORING",
    "COMPLETADO",
    "ERROR",
    "CANCELADO",
]

ESTADOS_JOB_TERMINALES: Final[frozenset[str]] = frozenset({"COMPLETADO", "ERROR", "CANCELADO"})

TIPOS_ARCHIVO: Final[list[str]] = ["EXCEL", "CSV", "MANUAL"]

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

TIPOS_ERROR: Final[list[str]] = [
    "PARSING",
    "VALIDATION",
    "NORMALIZATION",
    "SCORING",
    "DATABASE",
    "BUSINESS_RULE",
    "SYSTEM",
]

SEVERIDADES: Final[list[str]] = ["ERROR", "WARNING", "INFO", "CRITICAL"]

PASOS_ETL: Final[list[str]] = [
    "UPLOAD",
    "PARSING",
    "FIELD_DETECTION",
    "NORMALIZATION",
    "VALIDATION",
    "SCORING",
    "PERSISTENCE",
]

# ---------------------------------------------------------------------------
# Validation rules catalogue
# ---------------------------------------------------------------------------

TIPOS_VALIDACION: Final[list[str]] = [
    "REQUIRED",
    "TYPE",
    "RANGE",
    "ENUM",
    "PATTERN",
    "BUSINESS",
    "DEPENDENCY",
    "CUSTOM",
]

OPERADORES: Final[list[str]] = [
    "EQUALS",
    "NOT_EQUALS",
    "GREATER_THAN",
    "LESS_THAN",
    "GREATER_EQUAL",
    "LESS_EQUAL",
    "IN",
    "NOT_IN",
    "CONTAINS",
    "NOT_CONTAINS",
    "REGEX",
    "BETWEEN",
]

CATEGORIAS_REGLA: Final[list[str]] = [
    "HARDWARE",
    "SOFTWARE",
    "CONECTIVIDAD",
    "IDENTIFICACION",
    "CALIDAD",
    "NEGOCIO",
]

TIPOS_CORRECCION: Final[list[str]] = [
    "NORMALIZACION_RAM",
    "NORMALIZACION_CPU",
    "LIMPIEZA_TEXTO",
    "CONVERSION_NUMERICA",
]
