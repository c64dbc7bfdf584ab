"""
Suicidality Prediction Analysis Package

This package contains modules for building the predictor and outcome
tables from questionnaire and interview exports, assembling the
per-subject modeling dataset, and training and evaluating the
suicidal ideation classifiers.
"""

from .predictors import PredictorTableBuilder, SourceSchema, PREDICTOR_SOURCES
from .outcomes import OutcomeLabelBuilder
from .assembly import DatasetAssembler
from .data_processing import BaggedTreeImputer, DataProcessor, create_sample_data
from .feature_selection import BorutaSelector
from .model import ModelTrainer
from .evaluation import ModelEvaluator, find_optimal_threshold
from .pipeline import AnalysisPipeline

__version__ = "0.1.0"
__all__ = [
    "PredictorTableBuilder",
    "SourceSchema",
    "PREDICTOR_SOURCES",
    "OutcomeLabelBuilder",
    "DatasetAssembler",
    "BaggedTreeImputer",
    "DataProcessor",
    "create_sample_data",
    "BorutaSelector",
    "ModelTrainer",
    "ModelEvaluator",
    "find_optimal_threshold",
    "AnalysisPipeline",
]
