import unittest
from unittest import mock

import psycopg2

from fakes import FakeDatabase
from pgworker.connection import ColumnDescriptor, PGConnection, ResultSet
from pgworker.errors import CardinalityError, DBConnectionError, QueryError
from pgworker.utils import flatten_connection_params


class TestResultSet(unittest.TestCase):
    def test_records_and_protocol(self):
        rs = ResultSet(
            columns=[ColumnDescriptor("id", 23), ColumnDescriptor("name", 25)],
            rows=[(1, "a"), (2, "b")],
        )
        self.assertEqual(len(rs), 2)
        self.assertTrue(rs)
        self.assertEqual(list(rs), [(1, "a"), (2, "b")])
        self.assertEqual(rs.column_names, ["id", "name"])
        self.assertEqual(rs.records(), [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}])
        self.assertFalse(ResultSet())


class TestOpen(unittest.TestCase):
    def test_flatten_connection_params_keeps_order(self):
        params = {"host": "localhost", "port": 5432, "dbname": "metrics"}
        self.assertEqual(flatten_connection_params(params), "host=localhost port=5432 dbname=metrics")

    def test_open_passes_flattened_dsn(self):
        with mock.patch("pgworker.connection.psycopg2.connect", return_value=FakeDatabase()) as connect:
            conn = PGConnection.open({"host": "db", "user": "u", "password": "secret"})
        connect.assert_called_once_with("host=db user=u password=secret")
        self.assertFalse(conn.closed)
        self.assertEqual(repr(conn), "<PGConnection host=db user=u password=*** open>")

    def test_open_accepts_dsn_string(self):
        with mock.patch("pgworker.connection.psycopg2.connect", return_value=FakeDatabase()) as connect:
            PGConnection.open("dbname=x")
        connect.assert_called_once_with("dbname=x")

    def test_open_failure(self):
        error = psycopg2.OperationalError("could not connect to server")
        with mock.patch("pgworker.connection.psycopg2.connect", side_effect=error):
            with self.assertRaisesRegex(DBConnectionError, "could not connect"):
                PGConnection.open({"host": "nowhere"})


class TestExecute(unittest.TestCase):
    def test_select_commits_and_returns_rows(self):
        db = FakeDatabase(select_result=([("id", 23)], [(1,), (2,)]))
        conn = PGConnection(db)
        rs = conn.execute("SELECT id FROM t LIMIT 100")
        self.assertEqual(rs.columns, [ColumnDescriptor("id", 23)])
        self.assertEqual(rs.rows, [(1,), (2,)])
        self.assertEqual(db.commit_calls, 1)
        self.assertEqual(db.executed, [("SELECT id FROM t LIMIT 100", None)])

    def test_statement_without_result_set(self):
        db = FakeDatabase()
        rs = PGConnection(db).execute("TRUNCATE t CASCADE")
        self.assertEqual(rs, ResultSet())
        self.assertEqual(db.commit_calls, 1)

    def test_params_are_passed_as_list(self):
        db = FakeDatabase()
        PGConnection(db).execute("INSERT INTO t(a) VALUES(%s)", ("x",))
        self.assertEqual(db.executed[-1], ("INSERT INTO t(a) VALUES(%s)", ["x"]))

    def test_query_error_rolls_back(self):
        db = FakeDatabase()
        db.fail_on("bogus", psycopg2.ProgrammingError('syntax error at or near "bogus"'))
        conn = PGConnection(db)
        with self.assertRaisesRegex(QueryError, "syntax error"):
            conn.execute("bogus")
        self.assertEqual(db.rollback_calls, 1)
        self.assertEqual(db.commit_calls, 0)

    def test_operational_error_is_connection_error(self):
        db = FakeDatabase()
        db.fail_on("SELECT", psycopg2.OperationalError("server closed the connection unexpectedly"))
        with self.assertRaises(DBConnectionError):
            PGConnection(db).execute("SELECT 1")

    def test_execute_one(self):
        db = FakeDatabase(select_result=([("n", 23)], [(7,)]))
        self.assertEqual(PGConnection(db).execute_one("SELECT 7 AS n"), {"n": 7})

        db.select_result = ([("n", 23)], [])
        with self.assertRaises(CardinalityError) as ctx:
            PGConnection(db).execute_one("SELECT n FROM t")
        self.assertEqual(ctx.exception.rowcount, 0)

        db.select_result = ([("n", 23)], [(1,), (2,)])
        with self.assertRaisesRegex(CardinalityError, "got 2"):
            PGConnection(db).execute_one("SELECT n FROM t")

    def test_closed_connection(self):
        db = FakeDatabase()
        with PGConnection(db) as conn:
            pass
        self.assertTrue(conn.closed)
        self.assertEqual(db.closed, 1)
        conn.close()
        with self.assertRaises(DBConnectionError):
            conn.execute("SELECT 1")


if __name__ == "__main__":
    unittest.main()
