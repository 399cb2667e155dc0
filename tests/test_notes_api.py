import logging

import pytest
from fastapi.testclient import TestClient

from notes_api.errors import StoreUnavailableError
from notes_api.main import GENERIC_ERROR, create_app
from notes_api.repositories import InMemoryNoteRepository

from conftest import login, make_settings


def add_note(client, body="Buy milk", tags="errand"):
    return client.post("/note", data={"body": body, "tags": tags}, follow_redirects=False)


class TestHealth:
    def test_health_check(self, client):
        res = client.get("/health")
        assert res.status_code == 200
        data = res.json()
        assert data["message"] == "Healthy"
        assert data["backend"] in ("memory", "sqlite")


class TestFeed:
    def test_add_redirects_and_shows_on_home(self, authed_client):
        res = add_note(authed_client, "Buy milk", "errand")
        assert res.status_code == 303
        assert res.headers["location"] == "/"

        home = authed_client.get("/")
        assert home.status_code == 200
        assert "Buy milk" in home.text
        assert "#errand" in home.text

    def test_home_without_notes(self, authed_client):
        res = authed_client.get("/")
        assert res.status_code == 200
        assert "No notes." in res.text

    def test_since_date(self, authed_client):
        add_note(authed_client, "Old enough", "")
        assert "Old enough" in authed_client.get("/t/2000-01-01").text
        assert "Old enough" not in authed_client.get("/t/2999-01-01").text

    def test_since_invalid_date(self, authed_client):
        res = authed_client.get("/t/18-10-2026")
        assert res.status_code == 400
        assert "expected YYYY-MM-DD" in res.text

    @pytest.mark.parametrize("day", ["2026-1-5", "20261018", "2026-10-18T00:00", "2026-02-30"])
    def test_since_date_must_be_padded_calendar_day(self, authed_client, day):
        assert authed_client.get(f"/t/{day}").status_code == 400

    def test_empty_body_is_a_client_error(self, authed_client):
        res = add_note(authed_client, "   ", "x")
        assert res.status_code == 400
        assert "No notes." in authed_client.get("/").text

    def test_submit_form(self, authed_client):
        res = authed_client.get("/submit")
        assert res.status_code == 200
        assert 'action="/note"' in res.text

    def test_body_is_escaped(self, authed_client):
        add_note(authed_client, "<script>alert(1)</script>", "")
        text = authed_client.get("/").text
        assert "<script>alert(1)</script>" not in text
        assert "&lt;script&gt;" in text


class TestSearch:
    def test_search_get_and_post(self, authed_client):
        add_note(authed_client, "Buy milk", "errand")
        add_note(authed_client, "Walk the dog", "pets")

        res = authed_client.get("/search", params={"query": "MILK"})
        assert res.status_code == 200
        assert "Buy milk" in res.text
        assert "Walk the dog" not in res.text

        res_post = authed_client.post("/search", data={"query": "pets"})
        assert res_post.status_code == 200
        assert "Walk the dog" in res_post.text
        assert "Buy milk" not in res_post.text

    def test_empty_search_shows_nothing(self, authed_client):
        add_note(authed_client, "Buy milk", "errand")
        res = authed_client.get("/search", params={"query": ""})
        assert res.status_code == 200
        assert "Buy milk" not in res.text


class TestToggleViewDelete:
    def test_milk_scenario(self):
        notes = InMemoryNoteRepository()
        client = TestClient(create_app(make_settings(), notes=notes, configure_logs=False))
        login(client)

        add_note(client, "Buy milk", "errand")
        assert "Buy milk" in client.get("/search", params={"query": "milk"}).text

        res = client.post("/note/toggle", data={"id": "1"}, follow_redirects=False)
        assert res.status_code == 303
        assert res.headers["location"] == "/#1"
        view = client.get("/note/1")
        assert view.status_code == 200
        assert 'class="note done"' in view.text

        res_del = client.post("/note/1/delete", follow_redirects=False)
        assert res_del.status_code == 303
        assert res_del.headers["location"] == "/"
        assert client.get("/note/1").status_code == 404

    def test_delete_twice_is_not_found(self, authed_client):
        add_note(authed_client, "once", "")
        assert authed_client.post("/note/1/delete", follow_redirects=False).status_code == 303
        res = authed_client.post("/note/1/delete", follow_redirects=False)
        assert res.status_code == 404
        assert res.text == "note not found"

    def test_toggle_unknown_note(self, authed_client):
        res = authed_client.post("/note/toggle", data={"id": "77"}, follow_redirects=False)
        assert res.status_code == 404

    def test_toggle_requires_integer_id(self, authed_client):
        res = authed_client.post("/note/toggle", data={"id": "abc"}, follow_redirects=False)
        assert res.status_code == 400
        assert res.text == "Request validation failed"

    def test_view_unknown_note(self, authed_client):
        assert authed_client.get("/note/5").status_code == 404


class BrokenNoteRepository(InMemoryNoteRepository):
    def get_all_since(self, ctx, since):
        raise StoreUnavailableError("connection refused by db-host:5432")


class TestStoreFailure:
    def test_store_failure_is_generic_and_logged(self, caplog):
        client = TestClient(create_app(make_settings(), notes=BrokenNoteRepository(), configure_logs=False))
        login(client)
        with caplog.at_level(logging.ERROR, logger="notes_api.main"):
            res = client.get("/")
        assert res.status_code == 500
        assert res.text == GENERIC_ERROR
        assert "db-host" not in res.text
        assert "connection refused by db-host:5432" in caplog.text


class TestSQLiteBackend:
    def test_end_to_end_on_sqlite(self, tmp_path):
        settings = make_settings(persistence_backend="sqlite", sqlite_db_path=str(tmp_path / "notes.db"))
        client = TestClient(create_app(settings, configure_logs=False))
        login(client)
        add_note(client, "Persisted note", "db")
        assert "Persisted note" in client.get("/search", params={"query": "DB"}).text
        assert client.get("/health").json()["backend"] == "sqlite"

    def test_ids_beyond_64_bits_are_not_found(self, tmp_path):
        settings = make_settings(persistence_backend="sqlite", sqlite_db_path=str(tmp_path / "notes.db"))
        client = TestClient(create_app(settings, configure_logs=False))
        login(client)
        huge = 2**63
        assert client.get(f"/note/{huge}").status_code == 404
        assert client.post(f"/note/{huge}/delete", follow_redirects=False).status_code == 404
        res = client.post("/note/toggle", data={"id": str(huge)}, follow_redirects=False)
        assert res.status_code == 404
        assert res.text == "note not found"
