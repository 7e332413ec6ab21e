import pytest
import yaml

from mergetraj.utils.config_manager import ConfigManager, MergeConfig, DEFAULT_CONFIG
from mergetraj.core.exceptions import ConfigurationError, SortKeyError


def _config(**kwargs):
    base = dict(model="start.psf", output="merged.dcd", inputs=["traj.1.dcd"])
    base.update(kwargs)
    return MergeConfig(**base)


def test_defaults():
    cfg = _config()
    assert cfg.downsample_rate == 10
    assert cfg.downsample_output is None
    assert not cfg.centering_requested
    assert not cfg.needs_molecules
    assert cfg.inputs == ("traj.1.dcd",)


@pytest.mark.parametrize("kwargs", [
    dict(model=None),
    dict(output=""),
    dict(inputs=[]),
    dict(downsample_rate=0),
    dict(input_format="xyz"),
    dict(downsample_output="merged.dcd"),
    dict(center_selection="segid A", xy_center_selection="segid B"),
    dict(center_selection="segid A", z_center_selection="segid B"),
])
def test_invalid_configuration(kwargs):
    with pytest.raises(ConfigurationError):
        _config(**kwargs)


def test_empty_strings_are_unset():
    cfg = _config(center_selection="", downsample_output="", scanf="")
    assert cfg.center_selection is None
    assert cfg.downsample_output is None
    assert cfg.scanf is None


def test_xy_and_z_centering_together_allowed():
    cfg = _config(xy_center_selection="segid A", z_center_selection="segid B")
    assert cfg.centering_requested
    assert cfg.needs_molecules


def test_fix_imaging_needs_molecules():
    assert _config(fix_imaging=True).needs_molecules


def test_ordered_inputs_unsorted_keeps_order():
    cfg = _config(inputs=["b.10.dcd", "a.2.dcd"])
    assert cfg.ordered_inputs() == ["b.10.dcd", "a.2.dcd"]


def test_ordered_inputs_sorted_by_regex():
    cfg = _config(inputs=["traj.10.dcd", "traj.9.dcd", "traj.100.dcd"], sort=True)
    assert cfg.ordered_inputs() == ["traj.9.dcd", "traj.10.dcd", "traj.100.dcd"]


def test_ordered_inputs_sorted_by_scanf():
    cfg = _config(inputs=["run2_7.xtc", "run1_9.xtc"], sort=True, scanf="run%d_")
    assert cfg.ordered_inputs() == ["run1_9.xtc", "run2_7.xtc"]


def test_malformed_sort_pattern_fails_early():
    with pytest.raises(ConfigurationError):
        _config(sort=True, scanf="traj.%s.dcd")
    with pytest.raises(ConfigurationError):
        _config(sort=True, regex="(")


def test_unmatched_input_name_raises_sort_key_error():
    cfg = _config(inputs=["traj.1.dcd", "final.dcd"], sort=True)
    with pytest.raises(SortKeyError):
        cfg.ordered_inputs()


def test_summary_mentions_options():
    text = _config(downsample_output="ds.dcd", skip_first_frame=True).summary()
    assert "downsample-dcd='ds.dcd'" in text
    assert "skip-first-frame=1" in text


def test_config_manager_defaults_untouched():
    manager = ConfigManager()
    manager.update_config({'downsample': {'rate': 3}})
    assert DEFAULT_CONFIG['downsample']['rate'] == 10
    assert manager.config['downsample'] == {'output': None, 'rate': 3}


def test_config_manager_yaml(tmp_path):
    path = tmp_path / "merge.yaml"
    path.write_text(yaml.dump({
        'model': 'start.psf',
        'output': 'merged.dcd',
        'inputs': ['traj.2.dcd', 'traj.1.dcd'],
        'downsample': {'output': 'merged_ds.dcd', 'rate': 5},
        'centering': {'selection': 'segid PROT'},
        'sort': {'enabled': True},
        'header': {'timestep': 0.002},
    }))
    cfg = ConfigManager(path).to_merge_config()
    assert cfg.downsample_rate == 5
    assert cfg.center_selection == 'segid PROT'
    assert cfg.timestep == pytest.approx(0.002)
    assert cfg.ordered_inputs() == ['traj.1.dcd', 'traj.2.dcd']


def test_config_manager_empty_yaml(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert ConfigManager(path).to_dict() == DEFAULT_CONFIG


def test_config_manager_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        ConfigManager(tmp_path / "missing.yaml")


@pytest.mark.parametrize("updates", [
    {'unknown': 1},
    {'centering': {'selectoin': 'segid A'}},
    {'downsample': 5},
    {'inputs': 'traj.dcd'},
])
def test_config_manager_rejects_bad_keys(updates):
    with pytest.raises(ConfigurationError):
        ConfigManager.from_dict(updates)


def test_config_manager_save_and_reload(tmp_path):
    manager = ConfigManager.from_dict({'model': 'm.pdb', 'output': 'o.dcd', 'inputs': ['i.dcd']})
    path = tmp_path / "saved.yaml"
    manager.save_config(path)
    assert ConfigManager(path).to_dict() == manager.to_dict()
