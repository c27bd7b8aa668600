from .grouping import CompareSummary, FingerprintResult, PathReport
from .sink import LoggingReportSink, ReportSink, TeeSink
from .store import ReportWriter, read_report
