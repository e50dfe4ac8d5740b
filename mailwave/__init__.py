"""
mailwave - mailbox migration wave reconciliation
Purpose: Cross-reference directory, wave, license and vault extracts and
assign every identity and shared mailbox to a migration wave
"""

__version__ = "3.0.0"
