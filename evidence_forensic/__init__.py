"""Evidence Forensic Toolkit.

Offline evidence analysis: SHA-512 hashing, rule-based risk scoring,
an append-only recovery ledger for business-fraud findings, and signed
directive packets for exchanging scoring hints between installations.
"""

__version__ = "1.0.0"
