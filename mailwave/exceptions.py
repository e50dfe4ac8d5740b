"""Error types raised by the mailwave pipeline."""


class MailwaveError(Exception):
    """Base class for every error the pipeline raises on purpose"""


class CriticalInputError(MailwaveError):
    """A required input collection is missing or empty; the run must stop"""

    def __init__(self, source: str, reason: str = "no records"):
        self.source = source
        self.reason = reason
        super().__init__(f"Critical input '{source}' unusable: {reason}")


class ConfigError(MailwaveError):
    """The YAML configuration contains a value the pipeline cannot use"""
