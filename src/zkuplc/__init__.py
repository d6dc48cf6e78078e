"""zkuplc: prove and verify UPLC program evaluation with OpenVM STARKs."""

__version__ = "0.1.0"
