# utils/constants.py

# --- Top-Level Result Directories ---
# One numbered directory per stage, sorted in pipeline order.

CONFIG_DIR = "00_RunConfiguration"            # Run config, metadata, hash
SLIMMER_DIR = "01_Slimmer"                    # Reduced (slimmed) sample
PRESELECTION_DIR = "02_Preselection"          # Per-sample selected outputs + plots
BDT_TRAIN_DIR = "03_BDTTraining"              # Partitions, grid search, final model
BDT_EVAL_DIR = "04_BDTEvaluation"             # Scoring summary
PLOTS_DIR = "05_Plots"                        # Final score plots

TOP_LEVEL_RESULT_DIRS = [
    CONFIG_DIR,
    SLIMMER_DIR,
    PRESELECTION_DIR,
    BDT_TRAIN_DIR,
    BDT_EVAL_DIR,
    PLOTS_DIR,
]

# --- Sub-Directories inside BDT_TRAIN_DIR ---
PARTITIONS_DIR = "partitions"
GRID_SEARCH_DIR = "grid_search"
MODEL_DIR = "model"

# --- Column / file conventions ---
SAMPLE_WEIGHT_COLUMN = "sample_weight"
BDT_SCORE_COLUMN = "bdt_score"
LOGIT_BDT_COLUMN = "logit_bdt"
SIGNAL_LABEL_TOKEN = "signal"       # case-sensitive substring marking the positive class
DATA_LABEL_TOKEN = "data"           # plotted as points, never stacked

TRAIN_SIGNAL_FILE = "bdt_train_signal.parquet"
TRAIN_BKG_FILE = "bdt_train_bkg.parquet"
TEST_SIGNAL_FILE = "bdt_test_signal.parquet"
TEST_BKG_FILE = "bdt_test_bkg.parquet"

MODEL_FILE = "bdt_model.joblib"
MODEL_METADATA_FILE = "bdt_model_metadata.json"

# --- Driver ---
PROGRESS_EVERY = 10000
UNKNOWN_ENTRY_COUNT = -1

# --- Defaults ---
DEFAULT_TREE_NAME = "nuselection/NeutrinoSelectionFilter"
DEFAULT_TRAIN_FRACTION = 0.8
DEFAULT_METHOD_NAME = "BDTG"
DEFAULT_OUTPUT_TAG = "_bdt"
DEFAULT_SEARCH_AXES = {
    "NTrees": [150, 200, 250],
    "MaxDepth": [2, 3, 4],
    "Shrinkage": [0.05, 0.1, 1.5],
    "MinNodeSize": [1.5, 2.5, 3.5],
    "nCuts": [10, 20, 30],
}
DEFAULT_FIXED_OPTIONS = {"BoostType": "Grad"}
