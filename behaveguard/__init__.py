"""behaveguard: behavioral telemetry delivery, session reconciliation and risk scoring."""

__version__ = "0.1.0"
