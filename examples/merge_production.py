#!/usr/bin/env python3
"""
Production Merge Example

This script merges a series of production trajectories into one DCD,
recentering a protein and writing a downsampled copy. Re-running it after
new segments have finished only appends the new frames.
"""

import sys
from glob import glob
from pathlib import Path

# Add the parent directory to the Python path
sys.path.append(str(Path(__file__).parent.parent / "src"))

from mergetraj import MergeConfig, SystemModel, merge_trajectories

def main():
    output_dir = Path("merged")
    output_dir.mkdir(exist_ok=True)

    config = MergeConfig(
        model="start.psf",
        output=str(output_dir / "production.dcd"),
        inputs=glob("traj.*.dcd"),
        sort=True,  # traj.2.dcd before traj.10.dcd
        downsample_output=str(output_dir / "production_1ns.dcd"),
        downsample_rate=10,
        center_selection="segid PROT",
        fix_imaging=True,
    )

    print("Loading model...")
    model = SystemModel.from_file(config.model)

    print("Merging trajectories...")
    result = merge_trajectories(config, model=model)

    print(f"Skipped {len(result.files_skipped)} merged files, appended {result.frames_appended} frames.")
    print(f"{config.output} now holds {result.frames_total} frames.")

if __name__ == "__main__":
    main()
