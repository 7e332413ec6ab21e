"""
Configuration management module for mergetraj.

This module provides the immutable run configuration consumed by the merge
driver, and loading of that configuration from YAML files.
"""
import copy
import yaml
from pathlib import Path
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, Union, Tuple, List

from .helpers import update_dict_recursively, DEFAULT_SORT_REGEX, scanf_key, regex_key, sort_by_numeric_key
from ..core.exceptions import ConfigurationError
from ..io.dcd import DEFAULT_TIMESTEP
from ..io.loader import VALID_FORMATS

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    'model': None,
    'output': None,
    'inputs': [],
    'downsample': {'output': None, 'rate': 10},
    'centering': {'selection': None, 'xy_selection': None, 'z_selection': None, 'selection_is_split': False},
    'fix_imaging': False,
    'skip_first_frame': False,
    'sort': {'enabled': False, 'scanf': None, 'regex': DEFAULT_SORT_REGEX},
    'header': {'timestep': DEFAULT_TIMESTEP, 'titles': []},
    'input_format': 'auto',
    'progress': True,
}


@dataclass(frozen=True)
class MergeConfig:
    """Complete, validated configuration of one merge run."""
    model: str
    output: str
    inputs: Tuple[str, ...]
    downsample_output: Optional[str] = None
    downsample_rate: int = 10
    center_selection: Optional[str] = None
    xy_center_selection: Optional[str] = None
    z_center_selection: Optional[str] = None
    selection_is_split: bool = False
    fix_imaging: bool = False
    skip_first_frame: bool = False
    sort: bool = False
    scanf: Optional[str] = None
    regex: str = DEFAULT_SORT_REGEX
    timestep: float = DEFAULT_TIMESTEP
    titles: Tuple[str, ...] = field(default_factory=tuple)
    input_format: str = 'auto'
    progress: bool = True

    def __post_init__(self):
        object.__setattr__(self, 'inputs', tuple(str(p) for p in self.inputs))
        object.__setattr__(self, 'titles', tuple(self.titles))
        for name in ('center_selection', 'xy_center_selection', 'z_center_selection', 'scanf', 'downsample_output'):
            if getattr(self, name) == '':
                object.__setattr__(self, name, None)

        if not self.model:
            raise ConfigurationError("A model file is required.")
        if not self.output:
            raise ConfigurationError("An output trajectory is required.")
        if not self.inputs:
            raise ConfigurationError("At least one input trajectory is required.")
        if self.center_selection and (self.xy_center_selection or self.z_center_selection):
            raise ConfigurationError(
                "Can't specify both centering-selection and either xy-centering-selection or z-centering-selection")
        if self.downsample_rate < 1:
            raise ConfigurationError(f"Downsample rate must be at least 1, got {self.downsample_rate}")
        if self.input_format not in VALID_FORMATS:
            raise ConfigurationError(f"Unsupported input format. Must be one of: {VALID_FORMATS}")
        if self.downsample_output is not None and Path(self.downsample_output) == Path(self.output):
            raise ConfigurationError("Downsampled output must differ from the merged output.")
        # Build the sort key now so a malformed pattern fails before any I/O.
        if self.sort:
            self.sort_key()

    @property
    def centering_requested(self) -> bool:
        return bool(self.center_selection or self.xy_center_selection or self.z_center_selection)

    @property
    def needs_molecules(self) -> bool:
        return self.centering_requested or self.fix_imaging

    def sort_key(self):
        if self.scanf:
            return scanf_key(self.scanf)
        return regex_key(self.regex)

    def ordered_inputs(self) -> List[str]:
        """Input trajectories, numerically sorted when sorting is enabled."""
        if not self.sort:
            return list(self.inputs)
        return sort_by_numeric_key(self.inputs, self.sort_key())

    def summary(self) -> str:
        return (f"downsample-dcd='{self.downsample_output or ''}', downsample-rate={self.downsample_rate}, "
                f"centering-selection='{self.center_selection or ''}', skip-first-frame={int(self.skip_first_frame)}, "
                f"fix-imaging={int(self.fix_imaging)}")


class ConfigManager:
    """Class for managing mergetraj configuration settings."""

    def __init__(self, config_file: Optional[Union[str, Path]] = None):
        """
        Initialize the configuration manager with defaults.

        Args:
            config_file: Path to a YAML configuration file (optional)
        """
        self.config: Dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)
        if config_file is not None:
            self.load_config(config_file)

    def load_config(self, config_file: Union[str, Path]) -> None:
        """
        Load configuration from a YAML file, merged over the current settings.

        Args:
            config_file: Path to the configuration file
        """
        config_path = Path(config_file)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_file}")

        logger.info(f"Loading configuration from {config_path}")
        with open(config_path, 'r') as f:
            user_cfg = yaml.safe_load(f)
        if user_cfg is None:
            return
        if not isinstance(user_cfg, dict):
            raise ConfigurationError(f"Configuration file {config_path} must contain a mapping.")
        self.update_config(user_cfg)

    def _validate_config(self) -> None:
        unknown = set(self.config) - set(DEFAULT_CONFIG)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")
        for section in ('downsample', 'centering', 'sort', 'header'):
            if not isinstance(self.config[section], dict):
                raise ConfigurationError(f"Configuration section '{section}' must be a mapping.")
            unknown = set(self.config[section]) - set(DEFAULT_CONFIG[section])
            if unknown:
                raise ConfigurationError(f"Unknown keys in '{section}': {sorted(unknown)}")
        if not isinstance(self.config['inputs'], (list, tuple)):
            raise ConfigurationError("'inputs' must be a list of trajectory files.")

    def update_config(self, updates: Dict[str, Any]) -> None:
        """
        Update configuration settings.

        Args:
            updates: Dictionary of configuration updates
        """
        update_dict_recursively(self.config, copy.deepcopy(updates))
        self._validate_config()

    def to_merge_config(self) -> MergeConfig:
        """Convert the current settings into a validated MergeConfig."""
        cfg = self.config
        return MergeConfig(
            model=cfg['model'],
            output=cfg['output'],
            inputs=tuple(cfg['inputs']),
            downsample_output=cfg['downsample']['output'],
            downsample_rate=int(cfg['downsample']['rate']),
            center_selection=cfg['centering']['selection'],
            xy_center_selection=cfg['centering']['xy_selection'],
            z_center_selection=cfg['centering']['z_selection'],
            selection_is_split=bool(cfg['centering']['selection_is_split']),
            fix_imaging=bool(cfg['fix_imaging']),
            skip_first_frame=bool(cfg['skip_first_frame']),
            sort=bool(cfg['sort']['enabled']),
            scanf=cfg['sort']['scanf'],
            regex=cfg['sort']['regex'],
            timestep=float(cfg['header']['timestep']),
            titles=tuple(cfg['header']['titles'] or ()),
            input_format=cfg['input_format'],
            progress=bool(cfg['progress']),
        )

    def save_config(self, output_file: Union[str, Path]) -> None:
        output_path = Path(output_file)
        logger.info(f"Saving configuration to {output_path}")
        with open(output_path, 'w') as f:
            yaml.dump(self.config, f, default_flow_style=False)

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.config)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'ConfigManager':
        """
        Create a ConfigManager instance from a dictionary merged over defaults.

        Args:
            config_dict: Dictionary of configuration settings

        Returns:
            ConfigManager instance
        """
        instance = cls()
        instance.update_config(config_dict)
        return instance
