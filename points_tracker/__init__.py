"""Points tracker: daily habits and tasks scored into points."""

__version__ = "1.0.0"
