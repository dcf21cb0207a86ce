# tests/test_decisions.py
import pytest

from converge.core.catalog import DecisionTable, ParameterSpec
from converge.core.catalog.decisions import input_domains
from converge.core.errors import ConfigError


DOMAINS = {"ca": [True, False], "crl_enable": [True, False], "mode": ["ssl", "plain"]}


def _crl_table():
    return DecisionTable(
        name="crl",
        inputs=["crl_enable", "ca"],
        rules=[
            {"when": {"crl_enable": False}, "set": {"ssl_crl_path": ""}},
            {"when": {"crl_enable": True, "ca": True}, "set": {"ssl_crl_path": "ca"}},
            {"when": {"crl_enable": True, "ca": False}, "set": {"ssl_crl_path": "host"}},
        ],
    )


def test_total_table_passes_check():
    _crl_table().check(DOMAINS)


def test_first_matching_rule_wins():
    """crl_enable=false tiene prioridad aunque la CA esté activa."""
    table = _crl_table()
    assert table.select({"crl_enable": False, "ca": True}).set == {"ssl_crl_path": ""}
    assert table.select({"crl_enable": True, "ca": False}).set == {"ssl_crl_path": "host"}


def test_uncovered_combination_is_rejected():
    table = DecisionTable(
        name="ca_paths",
        inputs=["ca"],
        rules=[{"when": {"ca": True}, "set": {"cacert": "/ssl/ca/ca_crt.pem"}}],
    )
    with pytest.raises(ConfigError, match="no es total"):
        table.check(DOMAINS)
    with pytest.raises(ConfigError):
        table.select({"ca": False})


def test_rules_must_set_the_same_keys():
    table = DecisionTable(
        name="ca_paths",
        inputs=["ca"],
        rules=[
            {"when": {"ca": True}, "set": {"cacert": "a", "cakey": "b"}},
            {"when": {"ca": False}, "set": {"cacert": "c"}},
        ],
    )
    with pytest.raises(ConfigError, match="se esperaba"):
        table.check(DOMAINS)


def test_inputs_need_finite_domain():
    table = DecisionTable(name="t", inputs=["certname"], rules=[{"set": {"x": "1"}}])
    with pytest.raises(ConfigError, match="boolean ni enum"):
        table.check(DOMAINS)


def test_when_keys_must_be_declared_inputs():
    table = DecisionTable(name="t", inputs=[], rules=[{"when": {"ca": True}, "set": {"x": "1"}}])
    with pytest.raises(ConfigError, match="no declaradas"):
        table.check(DOMAINS)


def test_input_domains_from_specs():
    specs = {
        "ca": ParameterSpec(name="ca", type="boolean"),
        "mode": ParameterSpec(name="mode", type="enum", choices=["ssl", "plain"]),
        "certname": ParameterSpec(name="certname"),
    }
    assert input_domains(specs) == {"ca": [True, False], "mode": ["ssl", "plain"]}
