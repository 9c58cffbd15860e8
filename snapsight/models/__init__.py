from snapsight.models.analysis_record import AnalysisRecord

__all__ = ["AnalysisRecord"]
