"""
Exception types raised inside the extraction pipeline.

None of these escape StepPipeline.scrape(): steps and the pipeline catch them
at their boundaries and turn them into "no result". Dictionary errors are the
exception; they surface when the dictionary is loaded, before any scrape.
"""


class CareerScanError(Exception):
    """Base error for careerscan"""


class DictionaryError(CareerScanError):
    """Dictionary data missing or malformed"""


class BrowserUnavailableError(CareerScanError):
    """Browser could not be launched or a context could not be created"""
