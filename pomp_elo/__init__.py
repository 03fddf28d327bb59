"""POMP-ELO: partially observed Markov process model of NBA team strength."""

__version__ = "0.1.0"
