"""
Built-in defaults for fragment conversion.

Values here are the lowest layer of the configuration hierarchy;
project_config.py overrides them from .fragments.json files.
"""

import numpy as np

# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------

# IFC entity type codes (web-ifc numbering) that always stay instanced,
# even when the element occurs only once: furnishing elements, windows, doors.
DEFAULT_INSTANCED_CATEGORIES = frozenset({
    263784265,   # IFCFURNISHINGELEMENT
    3304561284,  # IFCWINDOW
    395920057,   # IFCDOOR
})

# Edge length of the voxel grid laid over the model bounds (model units)
DEFAULT_VOXEL_SIZE = 1.0

# ---------------------------------------------------------------------------
# Bounding volumes
# ---------------------------------------------------------------------------

# Reference direction used to build the second axis of every candidate frame
WORLD_UP = np.array([0.0, 0.0, 1.0])

# ---------------------------------------------------------------------------
# Transforms
# ---------------------------------------------------------------------------

# Max |cos| between two scaled basis columns before a matrix counts as sheared
SHEAR_TOLERANCE = 1e-4

# Column norms below this are treated as a collapsed axis
MIN_AXIS_SCALE = 1e-12

# ---------------------------------------------------------------------------
# Edges
# ---------------------------------------------------------------------------

# Dihedral angle (degrees) above which an edge between two faces is drawn
DEFAULT_EDGE_THRESHOLD_DEG = 80.0

# Decimal places used to weld coincident vertices before edge extraction
EDGE_HASH_PRECISION = 4

DEFAULT_EDGE_COLOR = 0x555555
