# config.py
"""
Configuration constants for the photobook composer
"""

# Analysis
ANALYSIS_MAX_EDGE = 400          # Long edge (px) images are reduced to before scoring
ANALYSIS_CHUNK_SIZE = 10         # Photos analysed per cooperative chunk
HIGH_RESOLUTION_WIDTH = 1200     # Source width that earns the resolution bonus
HIGH_RESOLUTION_BONUS = 10
DEFAULT_QUALITY_SCORE = 70       # Neutral score used when analysis fails
LOCAL_CONTRAST_RADIUS = 10

# Score weights
SHARPNESS_WEIGHT = 0.35
LIGHTING_WEIGHT = 0.30
COMPOSITION_WEIGHT = 0.25

# Tier thresholds (placement priority only)
HERO_THRESHOLD = 80
FEATURED_THRESHOLD = 60
STANDARD_THRESHOLD = 40

# Exclusion policy
MINIMUM_QUALITY_THRESHOLD = 15
EXTREME_SHARPNESS_THRESHOLD = 10
EXTREME_LIGHTING_THRESHOLD = 10

# Pagination
MIN_PAGES = 8
MAX_PAGES = 60
CHAPTER_INTERVAL = 6
DEFAULT_TITLE = "My Photobook"

# Sampling for the enrichment service
MAX_ENRICHMENT_SAMPLES = 50
SAMPLE_HEAD = 10
SAMPLE_TAIL = 10
SAMPLE_MIDDLE = 30
ENRICHMENT_THUMBNAIL_EDGE = 512
ENRICHMENT_TIMEOUT_SECS = 60

# Layout
DEFAULT_LAYOUT_ID = "split-h"
COVER_LAYOUT_ID = "full"

# Editing
SNAP_THRESHOLD = 0.8             # Percentage points
MIN_ELEMENT_SIZE = 10            # Percentage points, resize floor
ROTATION_SNAP_DEGREES = 15
PASTE_OFFSET = 5
DROP_ELEMENT_SIZE = 40

# History
MAX_HISTORY_ENTRIES = 50
HISTORY_DEBOUNCE_MS = 300

# Autosave settings
AUTOSAVE_DEBOUNCE_MS = 1500
AUTOSAVE_PATH = "photobooks"
AUTOSAVE_MAX_RETRIES = 3
AUTOSAVE_INITIAL_BACKOFF_MS = 100

# Cache settings
MAX_CACHE_SIZE = 500            # Scores kept across pipeline runs

# Colours
WHITE = "#FFFFFF"
WARM_NEUTRAL = "#F8F5F2"
NEAR_BLACK_LUMINANCE = 40        # Palette colours darker than this are never used
TITLE_FONT_FAMILY = "Playfair Display, serif"

# Supported image formats
SUPPORTED_IMAGE_FORMATS = ['png', 'jpg', 'jpeg', 'bmp', 'webp', 'gif', 'tiff']
