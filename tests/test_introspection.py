import unittest

import psycopg2

from fakes import FakeDatabase, events_table
from pgworker.connection import PGConnection
from pgworker.errors import DBConnectionError, IntrospectionError
from pgworker.introspection import Introspector
from pgworker.schema_cache import NO_PRIMARY_KEY, SchemaCache
from pgworker.type_names import TypeNameResolver


def make_introspector(db: FakeDatabase, tables=(), memoize=True) -> Introspector:
    conn = PGConnection(db, "dbname=test")
    resolver = TypeNameResolver(conn.execute_one, memoize=memoize)
    return Introspector(conn.execute, SchemaCache(tables), resolver)


class TestTypeNameResolver(unittest.TestCase):
    def test_resolves_and_memoizes(self):
        db = FakeDatabase()
        resolver = TypeNameResolver(PGConnection(db).execute_one)
        self.assertEqual(resolver.resolve(23), "int4")
        self.assertEqual(resolver(23), "int4")
        self.assertEqual(len(db.queries("pg_type")), 1)
        self.assertEqual(db.executed[0][1], [23])

        resolver.clear()
        resolver.resolve(23)
        self.assertEqual(len(db.queries("pg_type")), 2)

    def test_without_memoization_queries_every_time(self):
        db = FakeDatabase()
        resolver = TypeNameResolver(PGConnection(db).execute_one, memoize=False)
        resolver.resolve(25)
        resolver.resolve(25)
        self.assertEqual(len(db.queries("pg_type")), 2)

    def test_unknown_oid(self):
        resolver = TypeNameResolver(PGConnection(FakeDatabase()).execute_one)
        with self.assertRaisesRegex(IntrospectionError, "99999"):
            resolver.resolve(99999)

    def test_connection_failure_propagates(self):
        db = FakeDatabase()
        db.fail_on("pg_type", psycopg2.OperationalError("server closed the connection"))
        resolver = TypeNameResolver(PGConnection(db).execute_one)
        with self.assertRaises(DBConnectionError):
            resolver.resolve(23)


class TestIntrospect(unittest.TestCase):
    def test_columns_types_and_primary_key(self):
        intro = make_introspector(FakeDatabase(events_table()))
        self.assertTrue(intro.introspect("public.events"))

        meta = intro.cache.require("public.events")
        self.assertEqual((meta.schema, meta.table), ("public", "events"))
        self.assertEqual(list(meta.columns.items()), [("id", "int4"), ("name", "text"), ("ts", "timestamp")])
        self.assertEqual(meta.primary_key, "id")

    def test_probe_and_primary_key_queries(self):
        db = FakeDatabase(events_table())
        make_introspector(db).introspect("public.events")
        self.assertEqual(db.queries("LIMIT 0"), ["SELECT * FROM public.events LIMIT 0"])
        pk_calls = [(q, p) for q, p in db.executed if "PRIMARY KEY" in q]
        self.assertEqual(len(pk_calls), 1)
        self.assertEqual(pk_calls[0][1], ["public", "events"])

    def test_table_without_primary_key(self):
        db = FakeDatabase({"public.log": {"columns": [("line", 25)]}})
        intro = make_introspector(db)
        intro.introspect("public.log")
        self.assertEqual(intro.cache.require("public.log").primary_key, NO_PRIMARY_KEY)

    def test_name_without_schema(self):
        db = FakeDatabase({"events": {"columns": [("id", 23)], "primary_key": "id"}})
        intro = make_introspector(db)
        intro.introspect("events")
        meta = intro.cache.require("events")
        self.assertEqual((meta.schema, meta.table), ("", "events"))
        self.assertEqual(meta.primary_key, "id")

    def test_primary_key_query_with_empty_schema_finds_nothing(self):
        db = FakeDatabase({"events": {"columns": [("id", 23)]}, "public.events": events_table()["public.events"]})
        intro = make_introspector(db)
        intro.introspect("events")
        self.assertEqual(intro.cache.require("events").primary_key, NO_PRIMARY_KEY)

    def test_missing_table_is_logged_and_left_out(self):
        db = FakeDatabase()
        intro = make_introspector(db)
        with self.assertLogs("pgworker.introspection", level="ERROR") as logs:
            self.assertFalse(intro.introspect("public.nope"))
        self.assertIn("public.nope", logs.output[0])
        self.assertNotIn("public.nope", intro.cache)
        self.assertEqual(db.rollback_calls, 1)

    def test_failed_type_lookup_leaves_no_partial_entry(self):
        db = FakeDatabase({"public.odd": {"columns": [("a", 23), ("b", 424242)]}})
        intro = make_introspector(db)
        with self.assertLogs("pgworker.introspection", level="ERROR"):
            intro.introspect("public.odd")
        self.assertNotIn("public.odd", intro.cache)

    def test_failure_keeps_previous_entry(self):
        db = FakeDatabase(events_table())
        intro = make_introspector(db)
        intro.introspect("public.events")
        db.fail_on("LIMIT 0", psycopg2.OperationalError("gone"))
        with self.assertLogs("pgworker.introspection", level="ERROR"):
            self.assertFalse(intro.introspect("public.events"))
        self.assertEqual(intro.cache.require("public.events").primary_key, "id")


class TestEnsureKnown(unittest.TestCase):
    def test_idempotent_for_known_table(self):
        db = FakeDatabase(events_table())
        intro = make_introspector(db)
        intro.ensure_known("public.events")
        before = intro.cache.require("public.events").to_dict()
        count = len(db.executed)

        intro.ensure_known("public.events")
        self.assertEqual(len(db.executed), count)
        self.assertEqual(intro.cache.require("public.events").to_dict(), before)

    def test_unknown_table_rescans_every_known_table(self):
        tables = events_table()
        tables["public.users"] = {"columns": [("uid", 23), ("email", 25)], "primary_key": "uid"}
        db = FakeDatabase(tables)
        intro = make_introspector(db, tables=["public.events"])
        intro.introspect_all()
        self.assertEqual(db.queries("LIMIT 0"), ["SELECT * FROM public.events LIMIT 0"])

        intro.ensure_known("public.users")
        self.assertEqual(intro.cache.known_tables, ["public.events", "public.users"])
        self.assertEqual(
            db.queries("LIMIT 0"),
            [
                "SELECT * FROM public.events LIMIT 0",
                "SELECT * FROM public.events LIMIT 0",
                "SELECT * FROM public.users LIMIT 0",
            ],
        )
        self.assertEqual(intro.cache.require("public.users").primary_key, "uid")

    def test_failed_table_is_retried_on_next_access(self):
        db = FakeDatabase()
        intro = make_introspector(db)
        with self.assertLogs("pgworker.introspection", level="ERROR"):
            intro.ensure_known("public.events")
        self.assertNotIn("public.events", intro.cache)

        db.tables.update(events_table())
        intro.ensure_known("public.events")
        self.assertIn("public.events", intro.cache)
        self.assertEqual(intro.cache.known_tables, ["public.events"])


if __name__ == "__main__":
    unittest.main()
