from .comparator import Comparator, validate_roots
from .errors import ConfigurationError, FileAccessError
from .settings import CompareSettings
from .report.grouping import CompareSummary, FingerprintResult, PathReport
from .report.sink import LoggingReportSink, ReportSink
from .utils.processor import Processor
