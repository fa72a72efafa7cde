"""Pruebas de sub-scores, score total y nivel de cumplimiento."""

import pytest

from parque_etl.services.scoring import (
    aplicar_scores,
    calcular_sub_scores,
    nivel_cumplimiento,
    score_total,
)


@pytest.mark.parametrize(
    "score, nivel",
    [
        (100, "EXCELENTE"),
        (90, "EXCELENTE"),
        (89.99, "BUENO"),
        (80, "BUENO"),
        (70, "ACEPTABLE"),
        (50, "DEFICIENTE"),
        (49.9, "CRITICO"),
        (0, "CRITICO"),
    ],
)
def test_nivel(score, nivel):
    assert nivel_cumplimiento(score) == nivel


def test_score_total_ignora_ceros():
    assert score_total([0, 70, 85]) == 77.5
    assert score_total([0, 0, 0]) == 0.0
    assert score_total([100, 100, 100]) == 100.0


def test_penalizaciones_por_categoria():
    record = {
        "cpu_meets_requirements": False,
        "ram_meets_requirements": True,
        "disk_meets_requirements": True,
        "os_meets_requirements": True,
        "speed_meets_requirements": None,
    }
    errores = [{"categoria": "hardware"}, {"categoria": "datos"}]
    advertencias = [{"categoria": "software"}, {"categoria": "conectividad"}]

    subs = calcular_sub_scores(record, errores, advertencias)

    assert subs == {
        "score_hardware": 60.0,
        "score_software": 95.0,
        "score_conectividad": 95.0,
    }


def test_sub_score_con_piso_en_cero():
    record = {"cpu_meets_requirements": False, "ram_meets_requirements": False, "disk_meets_requirements": False}
    errores = [{"categoria": "hardware"}] * 2
    subs = calcular_sub_scores(record, errores, [])
    assert subs["score_hardware"] == 0.0


def test_aplicar_scores_escribe_en_el_registro():
    record = {"os_meets_requirements": False}
    aplicar_scores(record, [], [])
    assert record["score_software"] == 75.0
    assert record["score_total"] == 91.67
    assert record["nivel_cumplimiento"] == "EXCELENTE"
