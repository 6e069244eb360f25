"""File-based JSON settings storage.

Data layout:
  data/
    config.json    Preview settings (live_update, include_extension, title_suffix)

Sessions themselves are never persisted; a preview lives exactly as long as
its display surface.

Config: get_config() returns defaults merged with stored values.
update_config() applies partial updates; unknown keys are ignored.
"""

# Re-export all public symbols so `from backend import storage` keeps working.

from .core import (  # noqa: F401
    data_dir,
    init_storage,
)

from .config import (  # noqa: F401
    get_config,
    update_config,
)
