import os
from typing import Optional


class Environment:
    """This class contains various environment configurations for localfeed."""

    # Uploads larger than this are spooled to a temporary file by bottle
    LOCALFEED_BOTTLE_MEMFILE_MAX_OVERRIDE_BYTES: Optional[int] = (
        int(override)
        if (
            override := os.getenv(
                "LOCALFEED_BOTTLE_MEMFILE_MAX_OVERRIDE_BYTES",
            )
        )
        else None
    )
