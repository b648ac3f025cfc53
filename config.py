import os

# Base directory
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Paths
LOG_FILE = os.getenv("MOCK_TEST_LOG_FILE", os.path.join(BASE_DIR, "mock_test.log"))
STATE_DIR = os.getenv("MOCK_TEST_STATE_DIR", os.path.join(BASE_DIR, ".mock_test_state"))

# Persistence
STATE_KEY = "mock_test_state"
AUTOSAVE_INTERVAL_MS = 10_000   # periodic save while a test is running

# Timer
DEFAULT_DURATION_MINUTES = int(os.getenv("MOCK_TEST_DURATION_MINUTES", "180"))
TICK_INTERVAL_MS = 1000         # must stay <= 1 second
LOW_TIME_WARNING_MS = 5 * 60 * 1000   # last 5 minutes shown as a warning

# Scoring
NUMERICAL_TOLERANCE = 0.01
DEFAULT_OPTION_KEYS = ("A", "B", "C", "D")
