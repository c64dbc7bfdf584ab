"""
Evaluation Module

Youden's J cutoff calibration, accuracy / sensitivity / specificity / AUC
per model family, the severe-subgroup AUC, and comparison plots.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from sklearn.metrics import (
    accuracy_score, confusion_matrix, recall_score, roc_auc_score, roc_curve
)

from .config import DATA_CONFIG, OUTCOME_CONFIG
from .model import BORUTA_SUFFIX, LABEL_FAMILIES, family_of

logger = logging.getLogger(__name__)

IDEATION = OUTCOME_CONFIG['ideation_column']
ACTION = OUTCOME_CONFIG['action_column']
RESAMPLE = 'resample'


def find_optimal_threshold(y_true: np.ndarray, y_score: np.ndarray) -> Tuple[float, float]:
    """
    Probability cutoff maximizing Youden's J = sensitivity + specificity - 1.

    A subject is predicted positive when its score is >= the cutoff.

    Args:
        y_true: True labels
        y_score: Predicted probabilities

    Returns:
        Optimal threshold and the J statistic at that threshold
    """
    y_true = np.asarray(y_true).astype(int)
    if len(np.unique(y_true)) < 2:
        raise ValueError("Threshold calibration needs both outcome classes")

    fpr, tpr, thresholds = roc_curve(y_true, y_score, drop_intermediate=False)
    j = tpr - fpr
    best_idx = int(np.argmax(j))
    best_threshold = float(thresholds[best_idx])
    if not np.isfinite(best_threshold):
        best_threshold = float(np.max(y_score))
    return best_threshold, float(j[best_idx])


def severe_subgroup_mask(ideation: np.ndarray, action: np.ndarray) -> np.ndarray:
    """Controls plus subjects with both ideation and action."""
    ideation = np.asarray(ideation).astype(bool)
    action = np.asarray(action).astype(bool)
    return ~ideation | (ideation & action)


class ModelEvaluator:
    """Main class for model evaluation and visualization."""

    def __init__(self):
        self.evaluation_results: Dict[str, Dict[str, float]] = {}

    def calculate_metrics(self, y_true: np.ndarray, y_pred: np.ndarray,
                          y_score: Optional[np.ndarray] = None) -> Dict[str, float]:
        """
        Calculate evaluation metrics.

        Args:
            y_true: True labels
            y_pred: Predicted labels
            y_score: Predicted probabilities or labels for AUC (optional)

        Returns:
            Dictionary of evaluation metrics
        """
        y_true = np.asarray(y_true).astype(int)
        y_pred = np.asarray(y_pred).astype(int)

        metrics = {
            'accuracy': accuracy_score(y_true, y_pred),
            'sensitivity': recall_score(y_true, y_pred, pos_label=1, zero_division=0),
            'specificity': recall_score(y_true, y_pred, pos_label=0, zero_division=0),
        }
        if y_score is not None:
            metrics['auc'] = (roc_auc_score(y_true, y_score)
                              if len(np.unique(y_true)) == 2 else np.nan)

        tn, fp, fn, tp = confusion_matrix(y_true, y_pred, labels=[0, 1]).ravel()
        metrics.update({
            'true_positives': int(tp),
            'true_negatives': int(tn),
            'false_positives': int(fp),
            'false_negatives': int(fn),
        })
        return metrics

    def severe_subgroup_auc(self, ideation: np.ndarray, action: np.ndarray,
                            y_score: np.ndarray) -> float:
        """AUC restricted to controls and subjects with both ideation and action."""
        mask = severe_subgroup_mask(ideation, action)
        y_true = np.asarray(ideation).astype(int)[mask]
        if len(np.unique(y_true)) < 2:
            return np.nan
        return roc_auc_score(y_true, np.asarray(y_score)[mask])

    def evaluate_model(self, predictions: pd.DataFrame, column: str) -> Dict[str, float]:
        """
        Metrics for one model column, pooled across resamples.

        Probability models are cut at their Youden-optimal threshold;
        label-only models are scored on their labels directly.
        """
        family = family_of(column)
        y_true = predictions[IDEATION].astype(int).to_numpy()
        y_score = predictions[column].astype(float).to_numpy()

        if family in LABEL_FAMILIES:
            threshold = np.nan
            y_pred = (y_score >= 0.5).astype(int)
        else:
            threshold, _ = find_optimal_threshold(y_true, y_score)
            y_pred = (y_score >= threshold).astype(int)

        metrics = {
            'model': column,
            'family': family,
            'variant': 'boruta' if column.endswith(BORUTA_SUFFIX) else 'all',
            'threshold': threshold,
            'n': len(y_true),
        }
        metrics.update(self.calculate_metrics(y_true, y_pred, y_score))
        metrics['auc_severe'] = self.severe_subgroup_auc(
            predictions[IDEATION].to_numpy(), predictions[ACTION].to_numpy(), y_score)

        self.evaluation_results[column] = metrics
        return metrics

    def evaluate_predictions(self, predictions: pd.DataFrame,
                             model_columns: Optional[Sequence[str]] = None) -> pd.DataFrame:
        """
        Evaluate every model column of a prediction table.

        Args:
            predictions: subject_id, ideation, action, resample and one column per model
            model_columns: Columns to evaluate (default: all model columns)

        Returns:
            One row of metrics per model column
        """
        if model_columns is None:
            fixed = {DATA_CONFIG['subject_column'], IDEATION, ACTION, RESAMPLE}
            model_columns = [c for c in predictions.columns if c not in fixed]

        rows = []
        for column in model_columns:
            scored = predictions.dropna(subset=[column])
            if scored.empty:
                logger.warning(f"No predictions for {column}, skipped")
                continue
            rows.append(self.evaluate_model(scored, column))
        return pd.DataFrame(rows)

    def print_evaluation_report(self, metrics: pd.DataFrame) -> None:
        """Print a comparison table of the evaluated models."""
        print(f"\n{'='*78}")
        print("Model Comparison (cutoffs from Youden's J, pooled across resamples)")
        print(f"{'='*78}")
        print(f"{'Model':<28}{'Cutoff':>8}{'Acc':>8}{'Sens':>8}{'Spec':>8}{'AUC':>8}{'AUC sev':>9}")
        for _, row in metrics.iterrows():
            cutoff = '-' if pd.isna(row['threshold']) else f"{row['threshold']:.3f}"
            print(f"{row['model']:<28}{cutoff:>8}{row['accuracy']:>8.3f}{row['sensitivity']:>8.3f}"
                  f"{row['specificity']:>8.3f}{row['auc']:>8.3f}{row['auc_severe']:>9.3f}")
        print(f"{'='*78}\n")

    def plot_confusion_matrix(self, y_true: np.ndarray, y_pred: np.ndarray,
                              model_name: str = "Model",
                              figsize: Tuple[int, int] = (6, 5)) -> plt.Figure:
        cm = confusion_matrix(np.asarray(y_true).astype(int), np.asarray(y_pred).astype(int),
                              labels=[0, 1])
        fig, ax = plt.subplots(figsize=figsize)
        sns.heatmap(cm, annot=True, fmt='d', cmap='Blues',
                    xticklabels=['No ideation', 'Ideation'],
                    yticklabels=['No ideation', 'Ideation'],
                    ax=ax)
        ax.set_title(f'Confusion Matrix - {model_name}')
        ax.set_ylabel('True Label')
        ax.set_xlabel('Predicted Label')
        plt.tight_layout()
        return fig

    def plot_roc_curve(self, y_true: np.ndarray, y_score: np.ndarray,
                       model_name: str = "Model",
                       threshold: Optional[float] = None,
                       figsize: Tuple[int, int] = (7, 6)) -> plt.Figure:
        """
        Plot ROC curve, marking the calibrated cutoff when given.
        """
        y_true = np.asarray(y_true).astype(int)
        fpr, tpr, thresholds = roc_curve(y_true, y_score)
        roc_auc = roc_auc_score(y_true, y_score)

        fig, ax = plt.subplots(figsize=figsize)
        ax.plot(fpr, tpr, color='darkorange', lw=2, label=f'ROC curve (AUC = {roc_auc:.3f})')
        ax.plot([0, 1], [0, 1], color='navy', lw=2, linestyle='--', label='Random Classifier')
        if threshold is not None and np.isfinite(threshold):
            y_pred = (np.asarray(y_score) >= threshold).astype(int)
            sens = recall_score(y_true, y_pred, pos_label=1, zero_division=0)
            spec = recall_score(y_true, y_pred, pos_label=0, zero_division=0)
            ax.scatter([1 - spec], [sens], color='black', zorder=3,
                       label=f'Cutoff {threshold:.3f}')
        ax.set_xlim([0.0, 1.0])
        ax.set_ylim([0.0, 1.05])
        ax.set_xlabel('False Positive Rate (1 - Specificity)')
        ax.set_ylabel('True Positive Rate (Sensitivity)')
        ax.set_title(f'ROC Curve - {model_name}')
        ax.legend(loc="lower right")
        ax.grid(alpha=0.3)
        plt.tight_layout()
        return fig

    def compare_models(self, metrics: pd.DataFrame,
                       figsize: Tuple[int, int] = (12, 6)) -> plt.Figure:
        """Grouped bar chart of the key metrics per model."""
        key_metrics = ['accuracy', 'sensitivity', 'specificity', 'auc']
        comparison_df = metrics.set_index('model')[key_metrics]

        fig, ax = plt.subplots(figsize=figsize)
        comparison_df.plot(kind='bar', ax=ax)
        ax.set_title('Model Comparison')
        ax.set_xlabel('Model')
        ax.set_ylabel('Score')
        ax.set_ylim([0.0, 1.05])
        ax.legend(loc='center left', bbox_to_anchor=(1, 0.5))
        ax.grid(alpha=0.3, axis='y')
        plt.tight_layout()
        return fig

    def generate_evaluation_plots(self, predictions: pd.DataFrame, metrics: pd.DataFrame,
                                  save_dir: Optional[Union[str, Path]] = None) -> List[plt.Figure]:
        """
        ROC curve and confusion matrix per model plus the comparison chart.

        Args:
            predictions: Prediction table
            metrics: Output of evaluate_predictions
            save_dir: Directory to save plots (optional)

        Returns:
            List of generated figures
        """
        figures = []
        if save_dir:
            Path(save_dir).mkdir(parents=True, exist_ok=True)

        for _, row in metrics.iterrows():
            name = row['model']
            scored = predictions.dropna(subset=[name])
            y_true = scored[IDEATION].astype(int).to_numpy()
            y_score = scored[name].astype(float).to_numpy()
            threshold = row['threshold'] if pd.notna(row['threshold']) else 0.5

            fig = self.plot_roc_curve(y_true, y_score, name, threshold=row['threshold'])
            figures.append(fig)
            if save_dir:
                fig.savefig(Path(save_dir) / f"{name}_roc_curve.png", dpi=150)

            fig = self.plot_confusion_matrix(y_true, (y_score >= threshold).astype(int), name)
            figures.append(fig)
            if save_dir:
                fig.savefig(Path(save_dir) / f"{name}_confusion_matrix.png", dpi=150)

        fig = self.compare_models(metrics)
        figures.append(fig)
        if save_dir:
            fig.savefig(Path(save_dir) / "model_comparison.png", dpi=150)
            for f in figures:
                plt.close(f)
        return figures
