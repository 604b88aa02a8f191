"""Custom warning classes for the insurance_market package.

These warning classes allow users to programmatically filter, suppress,
or capture warnings using Python's standard ``warnings`` module.

Example:
    Suppress all configuration warnings in a batch run::

        import warnings
        from insurance_market._warnings import ConfigurationWarning

        warnings.filterwarnings("ignore", category=ConfigurationWarning)

    Capture replay observations while reading an external log::

        with warnings.catch_warnings(record=True) as w:
            warnings.simplefilter("always", ReplayWarning)
            log = EventLog.read_ndjson(path)
            issues = [x for x in w if issubclass(x.category, ReplayWarning)]
"""


class InsuranceMarketWarning(UserWarning):
    """Base class for all insurance_market warnings."""


class ConfigurationWarning(InsuranceMarketWarning):
    """Unusual or potentially incorrect configuration parameters.

    Raised during config validation when parameter values are legal but
    fall outside typical ranges (e.g., a renewal offset shorter than the
    quoting chain, or a broker with no insureds).
    """


class ReplayWarning(InsuranceMarketWarning):
    """Observations made while reading or replaying a persisted event log.

    Raised when a persisted log contains blank lines or records that
    do not decode to a known event variant and are skipped.
    """
