from __future__ import annotations

import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from mediabridge.config import Config  # noqa: E402


@pytest.fixture()
def config() -> Config:
    return Config(
        plex={"url": "http://plex:32400", "token": "plex-token"},
        jellyfin={"url": "http://jellyfin:8096", "api_key": "jf-key"},
        sync={"collections": True, "artwork": False, "item_artwork": False, "watch_state": False},
    )
