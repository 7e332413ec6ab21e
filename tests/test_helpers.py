import pytest

from mergetraj.utils.helpers import (
    scanf_key, regex_key, sort_by_numeric_key, update_dict_recursively, invocation_header,
)
from mergetraj.core.exceptions import ConfigurationError, SortKeyError


@pytest.mark.parametrize("name, expected", [
    ("traj.12.dcd", 12),
    ("run/traj.3.dcd", 3),
    ("prod_0007.xtc", 7),
    ("42", 42),
])
def test_regex_key_default(name, expected):
    assert regex_key()(name) == expected


def test_regex_key_uses_first_numeric_group():
    key = regex_key(r'part(\d+)_(\w+)')
    assert key("md.part0004_final.xtc") == 4


def test_regex_key_failure_names_file():
    with pytest.raises(SortKeyError, match="traj.dcd"):
        regex_key()("traj.dcd")


def test_regex_key_invalid_expression():
    with pytest.raises(ConfigurationError):
        regex_key(r'(\d+')


@pytest.mark.parametrize("fmt, name, expected", [
    ("traj.%d.dcd", "traj.12.dcd", 12),
    ("traj.%u.dcd", "traj.0.dcd", 0),
    ("run%3d.dcd", "run0451.dcd", 45),
    ("traj %d", "traj    9", 9),
    ("100%%_%d", "100%_5.dcd", 5),
    ("traj.%d.dcd", "traj.7.xtc", 7), # Text after the conversion is not checked
])
def test_scanf_key(fmt, name, expected):
    assert scanf_key(fmt)(name) == expected


def test_scanf_key_mismatch():
    with pytest.raises(SortKeyError):
        scanf_key("traj.%d.dcd")("prod.1.dcd")


@pytest.mark.parametrize("fmt", ["traj.dcd", "traj.%s.dcd", "%d.%d", "traj.%"])
def test_scanf_key_bad_format(fmt):
    with pytest.raises(ConfigurationError):
        scanf_key(fmt)


def test_sort_by_numeric_key():
    names = ["traj.10.dcd", "traj.2.dcd", "traj.1.dcd", "traj.100.dcd"]
    assert sort_by_numeric_key(names, regex_key()) == ["traj.1.dcd", "traj.2.dcd", "traj.10.dcd", "traj.100.dcd"]


def test_sort_by_numeric_key_reports_bad_name():
    with pytest.raises(SortKeyError) as excinfo:
        sort_by_numeric_key(["traj.1.dcd", "notes.txt"], regex_key())
    assert excinfo.value.filename == "notes.txt"


def test_update_dict_recursively():
    base = {'a': 1, 'b': {'c': 2, 'd': 3}}
    update_dict_recursively(base, {'b': {'c': 5}, 'e': 6})
    assert base == {'a': 1, 'b': {'c': 5, 'd': 3}, 'e': 6}


def test_invocation_header_quotes_arguments():
    assert invocation_header(['mergetraj', '--centering-selection', 'segid A']) == \
        "mergetraj --centering-selection 'segid A'"
