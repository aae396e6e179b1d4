"""ClinicFlow: encounter workflow engine for walk-in clinics."""

__version__ = "0.1.0"
