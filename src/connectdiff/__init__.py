"""connect-diff: reconcile two contact-center snapshots into a migration helper bundle."""

__version__ = "0.3.0"
