"""Programmatic Alembic upgrades for the sitemap catalog database.

``alembic.ini`` and the ``alembic/`` scripts live at the project root, three
levels above this package; every engine opened through
``open_catalog_engine`` is upgraded here before first use.
"""

from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config

_PROJECT_ROOT = Path(__file__).resolve().parents[3]


def upgrade_head(db_path: Path) -> None:
    """Bring the catalog tables (content, documents, state, trigger, jobs) to head."""

    config = Config(str(_PROJECT_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(_PROJECT_ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    command.upgrade(config, "head")
