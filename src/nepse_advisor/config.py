"""Configuration settings for the NEPSE advisor."""

from pathlib import Path

# Directory paths
DATA_DIR = Path("data")
LOG_FILE = Path("logs/nepse_advisor.log")

# Table names
RAW_DATA_TABLE = "daily_raw_data"
DAILY_TOP_TABLE = "daily_top_50"
SECTOR_SUMMARY_TABLE = "sector_summary"
WEEKLY_BEST_TABLE = "weekly_best_50"
WEEKLY_WORST_TABLE = "weekly_worst_50"
PREDICTIONS_TABLE = "predictions"
EVALUATION_TABLE = "weekly_evaluation"
MODEL_PARAMS_TABLE = "model_params"

MARKET_COLUMNS = ['Date', 'Symbol', 'Company Name', 'Sector', 'LTP', 'Trade Quantity', 'Num Trades', '% Change']

TABLE_COLUMNS = {
    RAW_DATA_TABLE: MARKET_COLUMNS,
    DAILY_TOP_TABLE: MARKET_COLUMNS + ['Status'],
    WEEKLY_BEST_TABLE: MARKET_COLUMNS,
    WEEKLY_WORST_TABLE: MARKET_COLUMNS,
    SECTOR_SUMMARY_TABLE: ['Date', 'Sector', 'Avg Change', 'Total Volume'],
    PREDICTIONS_TABLE: ['Date', 'Symbol', 'Company Name', 'Sector', 'Prediction', 'Confidence', 'Predicted Price', 'Reason'],
    EVALUATION_TABLE: ['Date', 'Symbol', 'Actual Outcome', 'Error Metric', 'Adjustment'],
    MODEL_PARAMS_TABLE: ['Date', 'Param Name', 'Value'],
}

# Tables that accept at most one batch per date
DATED_TABLES = {
    RAW_DATA_TABLE,
    DAILY_TOP_TABLE,
    SECTOR_SUMMARY_TABLE,
    WEEKLY_BEST_TABLE,
    WEEKLY_WORST_TABLE,
    PREDICTIONS_TABLE,
    EVALUATION_TABLE,
}

# External store
STORE_TIMEOUT_SECONDS = 30.0

# Model weights
DEFAULT_WEIGHTS = {
    'momentum': 0.4,  # Price trend influence
    'volume': 0.3,    # Volume trend influence
    'sector': 0.3     # Sector performance influence
}
BASE_LEARNING_RATE = 0.05
HOLIDAY_LEARNING_RATE_FACTOR = 0.5

# Feature extraction
FEATURE_WINDOW = 5
MOMENTUM_SCALE = 10        # 10% move over the window saturates the score
VOLUME_RATIO_WEIGHT = 0.5
SECTOR_TREND_SCALE = 5     # 5% average sector move saturates the score

# Prediction
CLASSIFICATION_THRESHOLD = 0.2
GROWTH = "Growth"
DOWNFALL = "Downfall"
NEUTRAL = "Neutral"

SECTOR_BETA = {
    'Hydropower': 1.2,
    'Commercial Bank': 0.8,
    'Life Insurance': 0.9,
}
DEFAULT_SECTOR_BETA = 1.0

HOLIDAY_DAMPENER = 0.6           # Applied to volume term and projected move
HOLIDAY_CONFIDENCE_FACTOR = 0.8
MAX_PROJECTED_MOVE = 0.10
HOLIDAY_NOTE_TEMPLATE = "Market:  ({note})"

# Calendar
WEEKEND_DAYS = (4, 5)  # Friday, Saturday
HOLIDAY_LOOKAHEAD_DAYS = 7
SHORT_WEEK_NOTE = "Short Trading Week"
INTERRUPTED_WEEK_NOTE = "Trading Week interrupted by Holidays"
SEASONAL_NOTES = {
    10: "Festival Season (Dashain/Tihar)",
    11: "Festival Season (Dashain/Tihar)",
    3: "Spring Holidays",
    4: "Spring Holidays",
}

# Weekly cycle
WEEKLY_WINDOW_DAYS = 7
HISTORY_WINDOW_DAYS = 14
MIN_WEEKLY_OBSERVATIONS = 2
MATURATION_MIN_DAYS = 5
MATURATION_MAX_DAYS = 10
TOP_N = 50
EVALUATION_HISTORY_LIMIT = 100
PENDING_ADJUSTMENT = "Pending Batch Update"
DEFAULT_SECTOR = "Others"
