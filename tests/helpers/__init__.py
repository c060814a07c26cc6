from .fakes import FakeDatastore, FakeEngine, make_document, make_page
from .metric_delta import histogram_observes, metric_delta, sample_value

__all__ = [
    "FakeDatastore",
    "FakeEngine",
    "make_document",
    "make_page",
    "histogram_observes",
    "metric_delta",
    "sample_value",
]
