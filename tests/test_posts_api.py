from __future__ import annotations

from pathlib import Path
from urllib.parse import unquote, urlparse

import pytest


def _post(client, headers, **fields):
    body = {"post_type": "general", "visibility": "private", "content": "deep work", "title": "Day 1"}
    body.update(fields)
    return client.post("/posts", headers=headers, json=body)


def test_private_post_visibility_flip(client, register, auth) -> None:
    u1, _ = register()
    u2, _ = register(email="b@x.com", username="bob")
    pid = _post(client, auth(u1)).json()["id"]

    assert client.get(f"/posts/{pid}", headers=auth(u2)).status_code == 403
    assert client.get(f"/posts/{pid}", headers=auth(u1)).status_code == 200

    r = client.patch(f"/posts/{pid}", headers=auth(u1), json={"visibility": "public"})
    assert r.status_code == 200
    assert r.json()["visibility"] == "public"
    assert client.get(f"/posts/{pid}", headers=auth(u2)).status_code == 200


def test_anonymous_reads(client, register, auth) -> None:
    token, _ = register()
    private_id = _post(client, auth(token)).json()["id"]
    public_id = _post(client, auth(token), visibility="public").json()["id"]

    assert client.get(f"/posts/{private_id}").status_code == 401
    r = client.get(f"/posts/{public_id}")
    assert r.status_code == 200
    assert r.json()["media"] == []
    # a header that is present must still be valid
    assert client.get(f"/posts/{public_id}", headers={"Authorization": "Bearer junk"}).status_code == 401


def test_create_post_response_shape(client, register, auth) -> None:
    token, user = register()
    r = _post(client, auth(token), mood_rating=4, tags=["Focus", " focus ", "writing", ""])
    assert r.status_code == 201
    body = r.json()
    assert body["user_id"] == user["id"]
    assert body["mood_rating"] == 4
    assert body["visibility"] == "private"
    assert sorted(body["tags"]) == ["focus", "writing"]
    assert body["session_id"] is None


@pytest.mark.parametrize(
    "fields,message",
    [
        ({"post_type": "diary"}, "post_type must be 'session' or 'general'"),
        ({"visibility": "friends"}, "visibility must be 'private' or 'public'"),
        ({"mood_rating": 0}, "mood_rating must be between 1 and 5"),
        ({"mood_rating": 6}, "mood_rating must be between 1 and 5"),
        ({"post_type": "session"}, "session_id is required for session posts"),
    ],
)
def test_create_post_validation(client, register, auth, fields, message) -> None:
    token, _ = register()
    r = _post(client, auth(token), **fields)
    assert r.status_code == 400
    assert r.json() == {"error": message}


def test_session_post_requires_owned_session(client, register, auth) -> None:
    alice, _ = register()
    bob, _ = register(email="b@x.com", username="bob")
    sid = client.post(
        "/sessions",
        headers=auth(alice),
        json={"start_time": "2024-01-01T10:00:00Z", "end_time": "2024-01-01T11:00:00Z"},
    ).json()["id"]

    r = _post(client, auth(bob), post_type="session", session_id=sid)
    assert r.status_code == 403
    assert r.json() == {"error": "forbidden: session does not belong to you"}

    assert _post(client, auth(alice), post_type="session", session_id=9999).status_code == 404

    r = _post(client, auth(alice), post_type="session", session_id=sid)
    assert r.status_code == 201
    assert r.json()["session_id"] == sid


def test_deleting_session_detaches_posts(client, register, auth) -> None:
    token, _ = register()
    sid = client.post(
        "/sessions",
        headers=auth(token),
        json={"start_time": "2024-01-01T10:00:00Z", "end_time": "2024-01-01T11:00:00Z"},
    ).json()["id"]
    pid = _post(client, auth(token), post_type="session", session_id=sid).json()["id"]
    client.delete(f"/sessions/{sid}", headers=auth(token))
    assert client.get(f"/posts/{pid}", headers=auth(token)).json()["session_id"] is None


def test_user_posts_are_self_scoped(client, register, auth) -> None:
    alice, a = register()
    bob, b = register(email="b@x.com", username="bob")
    _post(client, auth(alice), title="one")
    _post(client, auth(alice), title="two", visibility="public")
    _post(client, auth(bob), title="bob's")

    r = client.get(f"/posts/user/{a['id']}", headers=auth(alice))
    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 2
    assert {p["title"] for p in body["posts"]} == {"one", "two"}

    r = client.get(f"/posts/user/{a['id']}", headers=auth(bob))
    assert r.status_code == 403
    assert r.json() == {"error": "forbidden: can only view your own posts"}
    assert client.get(f"/posts/user/{a['id']}").status_code == 401


def test_update_post_is_partial_and_owner_only(client, register, auth) -> None:
    alice, _ = register()
    bob, _ = register(email="b@x.com", username="bob")
    pid = _post(client, auth(alice), mood_rating=3).json()["id"]

    r = client.patch(f"/posts/{pid}", headers=auth(alice), json={"title": "Renamed"})
    assert r.status_code == 200
    body = r.json()
    assert body["title"] == "Renamed"
    assert body["content"] == "deep work"
    assert body["mood_rating"] == 3

    assert client.patch(f"/posts/{pid}", headers=auth(alice), json={"mood_rating": 9}).status_code == 400
    assert client.patch(f"/posts/{pid}", headers=auth(alice), json={"visibility": "nope"}).status_code == 400
    assert client.patch(f"/posts/{pid}", headers=auth(bob), json={"title": "mine now"}).status_code == 403
    assert client.delete(f"/posts/{pid}", headers=auth(bob)).status_code == 403


def test_missing_post_is_404_before_ownership(client, register, auth) -> None:
    token, _ = register()
    assert client.get("/posts/424242", headers=auth(token)).status_code == 404
    assert client.get("/posts/424242").status_code == 404
    assert client.patch("/posts/424242", headers=auth(token), json={"title": "x"}).status_code == 404
    assert client.delete("/posts/424242", headers=auth(token)).status_code == 404


def test_delete_post_removes_media_objects(client, register, auth, media) -> None:
    token, _ = register()
    pid = _post(client, auth(token)).json()["id"]
    r = client.post(
        f"/posts/{pid}/media/upload",
        headers=auth(token),
        files={"file": ("shot.png", b"\x89PNG fake", "image/png")},
    )
    assert r.status_code == 201
    url = r.json()["file_url"]
    assert media.owns(url)

    r = client.delete(f"/posts/{pid}", headers=auth(token))
    assert r.status_code == 200
    assert r.json() == {"message": "post deleted"}
    assert client.get(f"/posts/{pid}", headers=auth(token)).status_code == 404

    assert not Path(unquote(urlparse(url).path)).exists()
