from setuptools import setup, find_packages

setup(
    name="mergetraj",
    version="0.1.0",
    description="Resumable merging, recentering and downsampling of MD trajectories into DCD",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "numpy",
        "MDAnalysis",
        "pyyaml",
        "tqdm",
    ],
    extras_require={
        'ovito': ["ovito"],
        'test': ["pytest"],
    },
    entry_points={
        'console_scripts': [
            'mergetraj=mergetraj.cli:main',
        ],
    },
    python_requires=">=3.9",
)
