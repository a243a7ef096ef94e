# tests/visit_scheduling/cli/test_run_visit_plan.py

import os

import pytest

from visit_scheduling.cli.run_visit_plan import _parse_overrides, main
from visit_scheduling.domain.exceptions import InputError

CSV_LOJAS = (
    "id;name;lat;lng;priority_class;base_frequency\n"
    "C01;Loja 1;3,0200;101,7700;1;2\n"
    "C02;Loja 2;3,0250;101,7750;1;1\n"
    "C03;Loja 3;3,0300;101,7800;2;1\n"
    "C04;Loja 4;3,0150;101,7650;3;0,5\n"
    "C05;Loja 5;3,0350;101,7720;3;1\n"
)


@pytest.fixture
def csv_lojas(tmp_path):
    caminho = tmp_path / "lojas.csv"
    caminho.write_text(CSV_LOJAS, encoding="utf-8")
    return str(caminho)


def test_parse_overrides():
    assert _parse_overrides(["1=4", "3=0.5"]) == {1: 4.0, 3: 0.5}
    assert _parse_overrides(None) == {}
    with pytest.raises(InputError):
        _parse_overrides(["tres"])


def test_execucao_completa(tmp_path, csv_lojas):
    saida = tmp_path / "planos"

    codigo = main(["--input", csv_lojas, "--output", str(saida), "--ano", "2026", "--mes", "3"])

    assert codigo == 0
    assert os.path.exists(saida / "plano_2026_03.csv")
    assert os.path.exists(saida / "plano_2026_03_resumo.json")


def test_previa_do_mes_seguinte_e_pools(tmp_path, csv_lojas):
    saida = tmp_path / "planos"

    codigo = main([
        "--input", csv_lojas, "--output", str(saida), "--ano", "2026", "--mes", "12",
        "--pool_priorities", "3", "--freq", "2=2", "--preview_next_month",
    ])

    assert codigo == 0
    assert os.path.exists(saida / "plano_2027_01.csv")


def test_entrada_invalida_retorna_2(tmp_path):
    assert main(["--input", str(tmp_path / "nao_existe.csv"), "--ano", "2026", "--mes", "3"]) == 2


def test_mes_invalido_retorna_2(csv_lojas):
    assert main(["--input", csv_lojas, "--ano", "2026", "--mes", "13"]) == 2
