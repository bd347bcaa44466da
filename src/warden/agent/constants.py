"""Shared constants for the agent core."""

MAX_ITERATIONS = 20

# Finite default for hook subprocesses; a timed-out hook is fail-open.
DEFAULT_HOOK_TIMEOUT_S = 60.0

# Accessibility trees beyond this size are truncated before reaching the model.
ACCESSIBILITY_TREE_LIMIT = 1_000_000

DEFAULT_MODEL_ID = "google:gemini-2.5-flash"

BLANK_PAGE_URL = "about:blank"

SCREENSHOT_MIME_TYPE = "image/png"
