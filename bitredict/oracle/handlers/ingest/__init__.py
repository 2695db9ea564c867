from .outcomes import compute_outcomes
from .results import IngestReport, ResultIngestionWorker

__all__ = ["compute_outcomes", "IngestReport", "ResultIngestionWorker"]
