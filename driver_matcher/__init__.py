"""
Driver Identity Matcher

Matches lead, field-agent registration and ledger transaction records to
canonical drivers by fuzzy name/phone similarity inside a hire-date window,
and reconciles claims made by more than one source.
"""

__version__ = "1.0.0"
