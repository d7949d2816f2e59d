import os
import sqlite3
import unittest

from cotiz import create_app
from cotiz.config import Config
from cotiz.db import SCHEMA_TABLES, close_db
from cotiz.db_migrations import to_sqlalchemy_url
from cotiz.demo_data import DEMO_CLIENT_ID
from tests.helpers.temp_db import TempDbSandbox


def _table_exists(db_path: str, table_name: str) -> bool:
    conn = sqlite3.connect(db_path)
    try:
        row = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name = ?",
            (table_name,),
        ).fetchone()
        return row is not None
    finally:
        conn.close()


class DbMigrationsTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="cotiz_migrations_test")
        self.db_path = self._temp_db.db_path
        self._prev_env = os.environ.get("FLASK_ENV")
        os.environ["FLASK_ENV"] = "development"

    def tearDown(self) -> None:
        if self._prev_env is None:
            os.environ.pop("FLASK_ENV", None)
        else:
            os.environ["FLASK_ENV"] = self._prev_env
        self._temp_db.cleanup()

    def _build_app(self, *, testing: bool, db_auto_init: bool):
        return create_app(self._temp_db.make_config(Config, TESTING=testing, DB_AUTO_INIT=db_auto_init))

    def test_schema_not_created_by_default(self) -> None:
        app = self._build_app(testing=False, db_auto_init=False)
        with app.app_context():
            close_db()

        self.assertFalse(_table_exists(self.db_path, "invitation_letters"))

    def test_schema_created_with_explicit_dev_flag(self) -> None:
        app = self._build_app(testing=False, db_auto_init=True)
        with app.app_context():
            close_db()

        for table in SCHEMA_TABLES:
            self.assertTrue(_table_exists(self.db_path, table), table)

    def test_auto_init_ignored_outside_development(self) -> None:
        os.environ["FLASK_ENV"] = "staging"
        app = self._build_app(testing=False, db_auto_init=True)
        with app.app_context():
            close_db()

        self.assertFalse(_table_exists(self.db_path, "invitation_letters"))

    def test_flask_db_upgrade_and_downgrade(self) -> None:
        app = self._build_app(testing=False, db_auto_init=False)
        runner = app.test_cli_runner()

        upgrade_result = runner.invoke(args=["db", "upgrade"])
        self.assertEqual(upgrade_result.exit_code, 0, msg=upgrade_result.output)
        self.assertTrue(_table_exists(self.db_path, "invitation_letters"))

        downgrade_result = runner.invoke(args=["db", "downgrade", "base"])
        self.assertEqual(downgrade_result.exit_code, 0, msg=downgrade_result.output)
        self.assertFalse(_table_exists(self.db_path, "invitation_letters"))

        reupgrade_result = runner.invoke(args=["db", "upgrade"])
        self.assertEqual(reupgrade_result.exit_code, 0, msg=reupgrade_result.output)
        self.assertTrue(_table_exists(self.db_path, "invitation_letters"))

    def test_seed_demo_command(self) -> None:
        app = self._build_app(testing=False, db_auto_init=False)
        runner = app.test_cli_runner()

        result = runner.invoke(args=["db", "seed-demo"])
        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertIn("token=", result.output)

        conn = sqlite3.connect(self.db_path)
        try:
            suppliers = conn.execute("SELECT COUNT(*) FROM suppliers").fetchone()[0]
            tokens = conn.execute("SELECT COUNT(*) FROM quote_tokens").fetchone()[0]
            client = conn.execute("SELECT name FROM clients WHERE id = ?", (DEMO_CLIENT_ID,)).fetchone()
        finally:
            conn.close()
        self.assertEqual(suppliers, 3)
        self.assertEqual(tokens, 1)
        self.assertIsNotNone(client)

        again = runner.invoke(args=["db", "seed-demo"])
        self.assertEqual(again.exit_code, 0, msg=again.output)
        conn = sqlite3.connect(self.db_path)
        try:
            self.assertEqual(conn.execute("SELECT COUNT(*) FROM suppliers").fetchone()[0], 3)
        finally:
            conn.close()


class SqlalchemyUrlTest(unittest.TestCase):
    def test_url_translation(self) -> None:
        self.assertEqual(to_sqlalchemy_url("postgres://u:p@db/cotiz"), "postgresql://u:p@db/cotiz")
        self.assertEqual(to_sqlalchemy_url("postgresql://u:p@db/cotiz"), "postgresql://u:p@db/cotiz")
        self.assertTrue(to_sqlalchemy_url("relative/cotiz.db").startswith("sqlite:///"))
        with self.assertRaises(RuntimeError):
            to_sqlalchemy_url("  ")


if __name__ == "__main__":
    unittest.main()
