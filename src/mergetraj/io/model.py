"""
System model: atom selections and the molecule partition used for reimaging.
"""
import numpy as np
from pathlib import Path
import logging
from typing import List, Union

import MDAnalysis as mda

from ..core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class SystemModel:
    """Thin wrapper over an MDAnalysis Universe holding the model topology."""

    def __init__(self, universe: mda.Universe):
        self.universe = universe

    @classmethod
    def from_file(cls, filename: Union[str, Path]) -> 'SystemModel':
        """
        Load a model (PSF, PDB, GRO, PRMTOP, ...) into an MDAnalysis Universe.

        Args:
            filename: Path to the model/topology file

        Returns:
            SystemModel wrapping the loaded Universe
        """
        path = Path(filename)
        if not path.exists():
            raise FileNotFoundError(f"Model file not found: {filename}")
        logger.info(f"Loading model: {path}")
        universe = mda.Universe(str(path))
        logger.info(f"Model loaded: {len(universe.atoms)} atoms.")
        return cls(universe)

    @property
    def n_atoms(self) -> int:
        return len(self.universe.atoms)

    @property
    def has_bonds(self) -> bool:
        return hasattr(self.universe, 'bonds') and len(self.universe.bonds) > 0

    def select(self, selection: str) -> np.ndarray:
        """Atom indices matching a selection string; an empty match is an error."""
        try:
            group = self.universe.select_atoms(selection)
        except Exception as e:
            raise ConfigurationError(f"Invalid selection '{selection}': {e}") from e
        if len(group) == 0:
            raise ConfigurationError(f"Selection '{selection}' matches no atoms.")
        return np.array(group.indices, dtype=np.intp)

    def molecules(self) -> List[np.ndarray]:
        """
        Partition all atoms into disjoint molecule groups.

        Bonded fragments are used when the model has connectivity; otherwise
        atoms are grouped by unique segment identifier. Each group lists atom
        indices in model order.
        """
        atoms = self.universe.atoms
        if self.has_bonds:
            groups = [np.sort(np.asarray(frag.indices, dtype=np.intp)) for frag in atoms.fragments]
            logger.info(f"Split model into {len(groups)} molecules using bond connectivity.")
        elif hasattr(atoms, 'segids'):
            segids = np.asarray(atoms.segids)
            # Keep first-appearance order of segids.
            _, first = np.unique(segids, return_index=True)
            groups = [np.flatnonzero(segids == segids[i]) for i in np.sort(first)]
            logger.info(f"Model has no bonds; split into {len(groups)} groups by segid.")
        else:
            groups = [np.arange(self.n_atoms, dtype=np.intp)]
            logger.warning("Model has neither bonds nor segids; treating the whole system as one group.")
        groups.sort(key=lambda g: g[0])
        return groups
