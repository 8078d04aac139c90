"""Diamond Tier Capital backend - application intake, admin back office and affiliate program."""

__version__ = "1.0.0"
