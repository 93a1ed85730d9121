from __future__ import annotations

from alembic import command
from alembic.config import Config

ALEMBIC_CONFIG = "alembic.ini"


def run_upgrade_head(config_path: str = ALEMBIC_CONFIG) -> None:
    command.upgrade(Config(config_path), "head")


if __name__ == "__main__":
    run_upgrade_head()
