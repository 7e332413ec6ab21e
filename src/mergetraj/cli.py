import argparse
import sys
import logging
from typing import List, Optional

from mergetraj import __version__
from mergetraj.core.merger import merge_trajectories
from mergetraj.utils.config_manager import ConfigManager
from mergetraj.utils.helpers import invocation_header

logger = logging.getLogger(__name__)

DESCRIPTION = """\
Merge a set of trajectory files into a single DCD trajectory, optionally
writing a second downsampled trajectory and recentering/reimaging the
coordinates on the way.

The target trajectory is appended to, not rewritten: its current frame count
is compared with the ordered list of inputs, and only the frames it does not
have yet are written. Inputs must therefore always be given in the same
order, and all of them must be given on every run (not just the newest).
An input that has grown since the previous merge is completed correctly.
"""

EPILOG = """\
example:
  mergetraj --centering-selection 'segid OPSN' --downsample-dcd merged_1ns.dcd \\
      --downsample-rate 10 start.psf merged.dcd traj.*.dcd --sort

The model file works best with connectivity: molecules are taken from the
bond graph when present, otherwise from the segment identifier.
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='mergetraj', description=DESCRIPTION, epilog=EPILOG,
                                     formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument('model', nargs='?', help='Model (topology) file.')
    parser.add_argument('output_traj', nargs='?', help='Merged output DCD trajectory.')
    parser.add_argument('input_traj', nargs='*', help='Input trajectories, in merge order.')
    parser.add_argument('--config', type=str, help='Path to YAML configuration file.')
    parser.add_argument('--downsample-dcd', type=str, help='Downsampled DCD, must be kept in sync with output_traj.')
    parser.add_argument('--downsample-rate', type=int, help='Write every nth frame to the downsampled DCD (default 10).')
    parser.add_argument('--centering-selection', type=str, help='Selection whose centroid is moved to the origin.')
    parser.add_argument('--xy-centering-selection', type=str, help='Selection for centering in the xy-plane.')
    parser.add_argument('--z-centering-selection', type=str, help='Selection for centering along z.')
    parser.add_argument('--selection-is-split', action='store_true', default=None,
                        help='Centering selection may be split across image boundaries.')
    parser.add_argument('--skip-first-frame', action='store_true', default=None,
                        help='Skip the first frame of each trajectory (e.g. XTC files that repeat the start structure).')
    parser.add_argument('--fix-imaging', action='store_true', default=None,
                        help="Reimage so molecules aren't broken across image boundaries.")
    parser.add_argument('--sort', action='store_true', default=None, help='Sort the input trajectories numerically.')
    parser.add_argument('--scanf', type=str, help="Sort using a scanf-style format string, e.g. 'traj.%%d.dcd'.")
    parser.add_argument('--regex', type=str, help=r"Sort using a regular expression (default '(\d+)\D*$').")
    parser.add_argument('--timestep', type=float, help='Timestep stored in a new output header.')
    parser.add_argument('--format', dest='input_format', type=str,
                        help="Input format: auto, mdanalysis, lammps or vasp_outcar.")
    parser.add_argument('--no-progress', action='store_true', help='Disable progress bars.')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging.')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def _cli_overrides(args: argparse.Namespace) -> dict:
    updates = {}
    if args.model: updates['model'] = args.model
    if args.output_traj: updates['output'] = args.output_traj
    if args.input_traj: updates['inputs'] = list(args.input_traj)

    downsample = {'output': args.downsample_dcd, 'rate': args.downsample_rate}
    centering = {'selection': args.centering_selection, 'xy_selection': args.xy_centering_selection,
                 'z_selection': args.z_centering_selection, 'selection_is_split': args.selection_is_split}
    sort = {'enabled': args.sort, 'scanf': args.scanf, 'regex': args.regex}
    for key, section in (('downsample', downsample), ('centering', centering), ('sort', sort)):
        section = {k: v for k, v in section.items() if v is not None}
        if section: updates[key] = section

    if args.timestep is not None: updates['header'] = {'timestep': args.timestep}
    if args.fix_imaging is not None: updates['fix_imaging'] = args.fix_imaging
    if args.skip_first_frame is not None: updates['skip_first_frame'] = args.skip_first_frame
    if args.input_format: updates['input_format'] = args.input_format
    if args.no_progress: updates['progress'] = False
    return updates


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_intermixed_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    command_line = ['mergetraj'] + list(sys.argv[1:] if argv is None else argv)
    try:
        manager = ConfigManager(args.config)
        manager.update_config(_cli_overrides(args))
        if not manager.config['header']['titles']:
            manager.update_config({'header': {'titles': [f"mergetraj {__version__}", invocation_header(command_line)]}})
        config = manager.to_merge_config()
        logger.info(config.summary())

        result = merge_trajectories(config)
        logger.info(f"Output {config.output}: {result.frames_total} frames ({result.frames_appended} appended).")
    except FileNotFoundError as e: logger.error(f"File Error: {e}"); raise SystemExit(1)
    except ValueError as e: logger.error(f"Value Error: {e}"); raise SystemExit(1)
    except Exception as e: logger.error(f"Unexpected error: {e}", exc_info=True); raise SystemExit(1)
    return 0


if __name__ == "__main__":
    main()
