"""
Default values for the image finder.

These defaults define the working limits and thresholds used throughout the
pyramid search. They can be overridden by user input via command-line arguments,
config files, or programmatic API (see FinderConfig).
"""

# Largest source raster accepted (width, height)
DEFAULT_MAX_SOURCE_SIZE = (2560, 2560)

# Largest target raster accepted (width, height)
DEFAULT_MAX_TARGET_SIZE = (256, 256)

# Default similarity threshold applied at full resolution
DEFAULT_SIMILARITY_THRESHOLD = 0.95

# Target area (px^2) below which a pyramid level is too coarse to search
DEFAULT_MIN_SEARCH_AREA = 100

# Threshold relaxation per scale level: threshold * DECAY ** scale_divider
COARSE_THRESHOLD_DECAY = 0.9275

# Fixed overlap threshold for the final deduplication at full resolution
NORMALIZE_OVERLAP_THRESHOLD = 0.325

# Overlap threshold bases for merging at coarse levels (0.90 .. 0.99)
MERGE_THRESHOLD_BASES = [round(0.90 + 0.01 * i, 2) for i in range(10)]

# Interpolation used to build the coarser pyramid levels
DEFAULT_INTERPOLATION = 'bicubic'

# Default worker count (None = detect from CPU count)
DEFAULT_WORKERS = None

# Default output directory
DEFAULT_OUTPUT_DIR = 'outputs'
