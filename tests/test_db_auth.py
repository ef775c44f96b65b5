"""
SQLite document persistence, open_store bootstrap and bcrypt authentication.
"""

import pytest

import auth
import db
from models import ADMIN_USER_ID
from store import EntityStore, open_store


def _fast_hash(password: str) -> str:
    return auth.hash_password(password, rounds=4)


class TestDocumentStore:
    def test_missing_namespace(self, temp_db) -> None:
        assert db.load_document("nothing-here") is None

    def test_save_overwrites(self, temp_db) -> None:
        db.save_document('{"v": 1}', "ns")
        db.save_document('{"v": 2}', "ns")
        assert db.load_document("ns") == '{"v": 2}'

    def test_force_password_flag(self, temp_db) -> None:
        assert not db.is_force_password_change()
        db.set_force_password_change()
        assert db.is_force_password_change()
        db.clear_force_password_change()
        assert not db.is_force_password_change()


class TestOpenStore:
    def test_first_run_seeds_admin(self, temp_db) -> None:
        store = open_store(lambda: _fast_hash("admin"))

        admin = store.state.users[0]
        assert admin.id == ADMIN_USER_ID
        assert auth.verify_password("admin", admin.password_hash)
        assert db.is_force_password_change()
        assert db.load_document() is not None

    def test_mutations_survive_reopen(self, temp_db) -> None:
        store = open_store(lambda: _fast_hash("admin"))
        sid = store.add_student(name="Omar Khalid")
        store.add_course_payment("missing", 10)

        reopened = open_store(lambda: pytest.fail("admin must not be re-seeded"))

        assert [s.id for s in reopened.state.students] == [sid]
        assert reopened.state == store.state

    def test_namespaces_are_isolated(self, temp_db) -> None:
        a = open_store(lambda: "x", namespace="a")
        a.add_student(name="Only in A")
        b = open_store(lambda: "x", namespace="b")
        assert b.state.students == ()


class TestAuth:
    @pytest.fixture
    def secured(self, clock, temp_db) -> EntityStore:
        store = EntityStore(clock=clock)
        store.update_user(ADMIN_USER_ID, password_hash=_fast_hash("admin"))
        store.logout()
        return store

    def test_long_passwords_truncate_to_72_bytes(self) -> None:
        hashed = _fast_hash("x" * 72)
        assert auth.verify_password("x" * 100, hashed)

    def test_login_sets_identity(self, secured: EntityStore) -> None:
        res = auth.login(secured, "admin", "admin")
        assert res.ok
        assert auth.current_user(secured.state).username == "admin"

    def test_bad_credentials(self, secured: EntityStore) -> None:
        assert not auth.login(secured, "admin", "wrong").ok
        assert not auth.login(secured, "ghost", "admin").ok
        assert auth.current_user(secured.state) is None

    def test_change_password_clears_flag(self, secured: EntityStore) -> None:
        db.set_force_password_change()

        auth.change_password(secured, "admin", "s3cret-pass")

        assert not db.is_force_password_change()
        assert auth.login(secured, "admin", "s3cret-pass").ok
        assert not auth.login(secured, "admin", "admin").ok

    def test_logout(self, secured: EntityStore) -> None:
        auth.login(secured, "admin", "admin")
        auth.logout(secured)
        assert secured.state.current_user_id is None
