"""
Shared constants used across multiple modules.
Single source of truth for time windows, event kinds and statistical cut-offs.
"""

# ─── Event kinds (Event Store vocabulary) ─────────────────────
KIND_FOOD = "food"
KIND_TRIGGER = "trigger"
KIND_MEDICATION = "medication"
KIND_SYMPTOM = "symptom"
KIND_FLARE = "flare"
KIND_DAILY_LOG = "daily_log"

CAUSE_KINDS = (KIND_FOOD, KIND_TRIGGER, KIND_MEDICATION, KIND_DAILY_LOG)
EFFECT_KINDS = (KIND_SYMPTOM, KIND_FLARE)

# Synthetic identity used for flare effects (flares carry no item id)
FLARE_EFFECT_ID = "flare"

# ─── Correlation windows: (label, start minutes, end minutes) ─
# Offsets are measured from the cause event; both bounds inclusive.
WINDOW_DEFINITIONS = [
    ("15m",    0,        15),
    ("30m",    0,        30),
    ("1h",     0,        60),
    ("2-4h",   2 * 60,   4 * 60),
    ("6-12h",  6 * 60,   12 * 60),
    ("24h",    0,        24 * 60),
    ("48h",    0,        48 * 60),
    ("72h",    0,        72 * 60),
]

# ─── χ² (df=1) critical values → p-value, strongest first ────
CHI_SQUARE_CRITICAL_VALUES = [
    (10.828, 0.001),
    (6.635,  0.01),
    (3.841,  0.05),
    (2.706,  0.10),
    (1.0,    0.20),
]
CHI_SQUARE_FLOOR_P_VALUE = 0.30

SIGNIFICANCE_LEVEL = 0.05

# ─── Population rank-correlation sweep ────────────────────────
RANK_LAG_HOURS = (0, 6, 12, 24, 48)
RANK_TIME_RANGES = {"7d": 7, "30d": 30, "90d": 90}
MIN_ALIGNED_POINTS = 10

# ─── Combination / dose windows ──────────────────────────────
COMBINATION_WINDOW_HOURS = 24
DOSE_RESPONSE_WINDOW_HOURS = 24
