"""stargazers: space-weather and daily-photo sync tooling."""

__version__ = "1.0.0"
