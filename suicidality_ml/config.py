"""
Configuration Module

Central configuration for the suicidality prediction analysis.
Includes paths, key columns, outcome item codes, assembly rules,
model settings and per-stage random seeds.
"""

import os
from pathlib import Path


def _resolve_project_path() -> Path:
    """Resolve the project root path.
    Priority: $SUICIDALITY_PROJECT_PATH env var -> repo root (parent of this package).
    """
    env_path = os.getenv("SUICIDALITY_PROJECT_PATH")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path(__file__).resolve().parent.parent


def _resolve_raw_data_path() -> Path:
    """Resolve raw questionnaire export directory with env override."""
    default = str(_resolve_project_path() / "data" / "raw")
    return Path(os.getenv("SUICIDALITY_RAW_DATA_PATH", default)).expanduser().resolve()


def _resolve_output_path() -> Path:
    """Resolve directory for intermediate and output files with env override."""
    default = str(_resolve_project_path() / "data" / "processed")
    return Path(os.getenv("SUICIDALITY_OUTPUT_PATH", default)).expanduser().resolve()


PROJECT_ROOT = _resolve_project_path()

# =====================
# Data Configuration
# =====================
DATA_CONFIG = {
    'raw_data_dir': _resolve_raw_data_path(),
    'output_dir': _resolve_output_path(),

    # Join keys shared by every export
    'subject_column': 'subject_id',
    'event_column': 'event_name',

    # Raw exports are delimited text with a header row. NDA-style exports
    # carry a second row of column descriptions which must be skipped.
    'delimiter': ',',
    'skip_description_row': False,

    # Intermediate / output file names (relative to output_dir)
    'predictors_file': 'predictors.csv',
    'outcomes_file': 'outcomes.csv',
    'observations_file': 'observations.csv',
    'subjects_file': 'subjects.csv',
    'train_file': 'train_imputed.csv',
    'test_file': 'test_raw.csv',
    'imputer_file': 'imputer.joblib',
    'resamples_file': 'resamples.json',
    'predictions_file': 'predictions.csv',
    'metrics_file': 'metrics.csv',
    'model_dir': 'models',
    'feature_dir': 'features',
    'figure_dir': 'figures',
}

# =====================
# Outcome Configuration
# =====================
OUTCOME_CONFIG = {
    'parent_file': 'ksads_parent.csv',
    'youth_file': 'ksads_youth.csv',
    'item_prefix': 'ksads_23_',
    'parent_suffix': '_p',
    'youth_suffix': '_t',

    # Passive/active ideation, method, intent, plan, preparatory acts,
    # interrupted/aborted/actual attempts (present and past)
    'ideation_codes': [
        821, 822, 823, 824, 825, 826, 827, 828, 829, 830,
        831, 832, 833, 834, 835, 836, 837, 838, 839, 840,
        1110, 1111, 1112, 1113,
    ],
    # Preparatory acts and attempts; must be a subset of ideation_codes
    'action_codes': [831, 832, 833, 834, 835, 836, 837, 838, 839, 840, 1112, 1113],
    # Items coded 1 = yes / 2 = no instead of 1 / 0
    'no_is_two_codes': [1110, 1111],

    'ideation_column': 'ideation',
    'action_column': 'action',
}

# =====================
# Dataset Assembly Configuration
# =====================
ASSEMBLY_CONFIG = {
    # Continuous cells outside this closed range are data-entry sentinels
    'valid_range': (0.0, 500.0),

    # Gender identity categories to swap (2 <-> 3)
    'gender_column': 'kbi_gender',
    'gender_swap': {2: 3, 3: 2},
    # Orientation / identity items whose codes above the limit are invalid
    'capped_code_columns': ['kbi_y_sex_orient', 'kbi_y_trans_id'],
    'capped_code_max': 3,

    # Sex assigned at birth: 1 = male, 2 = female before shifting to 0/1
    'sex_column': 'demo_sex_v2',
    'sex_shift': -1,

    # Administrative columns dropped before aggregation
    'admin_columns': ['site_id_l'],

    # Two-level fields (outcome flags included)
    'binary_columns': [
        'ideation', 'action', 'demo_sex_v2',
        'famhx_ss_momdad_scd_p', 'famhx_ss_momdad_dprs_p',
    ],
    # Outcome flags are "ever" flags after aggregation
    'ever_columns': ['ideation', 'action'],

    # Problem fields whose missing values mean "no problem reported"
    'problem_defaults': {'famhx_ss_momdad_scd_p': False, 'famhx_ss_momdad_dprs_p': False},

    # Teacher-report family removed entirely
    'teacher_prefix': 'bpm_t_',

    # Missing fraction allowed per row and per column
    'missing_threshold': 0.15,

    # Duplicate aggregates / near-collinear subscales
    'redundant_columns': [
        'cbcl_scr_syn_internal_r',
        'cbcl_scr_syn_external_r',
        'cbcl_scr_syn_totprob_r',
        'nihtbx_totalcomp_uncorrected',
        'psb_p_ss_mean',
        'fes_p_ss_fc',
    ],
}

# =====================
# Random seeds, one per stochastic stage
# =====================
SEEDS = {
    'split': 2021,
    'resample': 2022,
    'imputation': 2023,
    'boruta': 2024,
    'model': 2025,
}

# =====================
# Model Configuration
# =====================
MODEL_CONFIG = {
    'train_fraction': 0.75,
    'n_resamples': 4,
    'cv_folds': 10,
    'scoring_metric': 'accuracy',
    'n_iter': 20,  # randomized search candidates for SVM families
    'rf_trees': 1000,
    'use_boruta': True,

    'models_to_train': [
        'random_forest',
        'logistic_regression',
        'elastic_net',
        'gradient_boosting',
        'knn',
        'svm_linear',
        'svm_radial',
        'svm_poly',
    ],

    'param_grids': {
        'elastic_net': {
            'clf__C': [0.01, 0.1, 1.0, 10.0],
            'clf__l1_ratio': [0.0, 0.25, 0.5, 0.75, 1.0],
        },
        'gradient_boosting': {
            'n_estimators': [50, 100, 150],
            'max_depth': [1, 2, 3],
        },
        'knn': {
            'clf__n_neighbors': list(range(5, 44, 2)),
        },
        'svm_linear': {
            'clf__C': [0.01, 0.1, 1.0, 10.0],
        },
    },

    'imputation': {
        'n_estimators': 25,
        'max_iter': 5,
    },

    'boruta': {
        'n_estimators': 500,
        'max_iter': 100,
        'alpha': 0.01,
    },
}
