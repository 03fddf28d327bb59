from setuptools import setup, find_packages

setup(
    name="nba-pomp-elo",
    version="0.1.0",
    description="Partially observed ELO team-strength model for NBA seasons, fit by iterated filtering",
    packages=find_packages(include=["pomp_elo", "pomp_elo.*"]),
    install_requires=[
        "numpy>=1.22.4",
        "pandas>=1.5.3",
        "scipy>=1.10.0",
        "scikit-learn>=1.3.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    python_requires=">=3.8",
    entry_points={
        "console_scripts": [
            "pomp-elo=pomp_elo.main:main",
        ],
    },
)
