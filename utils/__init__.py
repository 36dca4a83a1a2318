"""
Utility package setup.

Enables pandas Copy-on-Write globally so derived record views do not
duplicate column buffers until they are written to.
"""

import pandas as pd

# Reduce implicit copies across the pipeline.
pd.options.mode.copy_on_write = True
