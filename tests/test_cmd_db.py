"""CLI tests for the db command group and the root app."""
from unittest.mock import patch

from sqlalchemy import create_engine, inspect, select
from sqlalchemy.orm import Session
from typer.testing import CliRunner


from commerce_ingest.config import Config, Settings
from commerce_ingest.db.models import Organization
from commerce_ingest.main import app as root_app

runner = CliRunner()


def test_init_creates_schema_and_org(tmp_path):
    url = f"sqlite:///{tmp_path / 'ingest.db'}"
    config = Config(settings=Settings(database_url=url))

    with patch("commerce_ingest.commands.db_cmd.get_config", return_value=config):
        first = runner.invoke(root_app, ["db", "init", "--org-name", "Acme"])
        second = runner.invoke(root_app, ["db", "init", "--org-name", "Other"])

    assert first.exit_code == 0
    assert second.exit_code == 0
    engine = create_engine(url)
    assert {"products", "orders", "amazon_sp_ads", "sync_logs"} <= set(inspect(engine).get_table_names())
    with Session(engine) as session:
        assert session.scalars(select(Organization.name)).all() == ["Acme"]
    engine.dispose()


def test_root_help_lists_groups():
    result = runner.invoke(root_app, ["--help"])

    assert result.exit_code == 0
    for group in ("backfill", "sync", "import", "ads-reports", "credentials", "products", "reports", "db"):
        assert group in result.output
