"""Integration tests: internal messaging endpoints."""
import json

import pytest

pytestmark = pytest.mark.asyncio


async def _send(client, headers, to, subject="Hi", body="Body", files=None, **extra):
    data = {"to": json.dumps(to), "subject": subject, "body": body, **extra}
    return await client.post("/api/v1/messages", data=data, files=files, headers=headers)


# ─── Sending ──────────────────────────────────────────────────────────────────

async def test_send_returns_thread_and_message_ids(client, make_user, auth):
    sender = await make_user("sender")
    r1 = await make_user("r1")
    resp = await _send(client, auth(sender), [r1.id])
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["threadId"] == body["messageId"]


async def test_send_rejects_malformed_recipients(client, make_user, auth):
    sender = await make_user("sender")
    resp = await client.post(
        "/api/v1/messages",
        data={"to": "not json", "subject": "Hi", "body": "Body"},
        headers=auth(sender),
    )
    assert resp.status_code == 400


async def test_send_to_self_only_is_rejected(client, make_user, auth):
    sender = await make_user("sender")
    resp = await _send(client, auth(sender), [sender.id])
    assert resp.status_code == 400


async def test_reply_with_thread_and_parent(client, make_user, auth):
    sender = await make_user("sender")
    r1 = await make_user("r1")
    first = (await _send(client, auth(sender), [r1.id])).json()

    reply = await _send(
        client,
        auth(r1),
        [sender.id],
        subject="Re: Hi",
        threadId=str(first["threadId"]),
        parentMessageId=str(first["messageId"]),
    )
    assert reply.status_code == 201
    assert reply.json()["threadId"] == first["threadId"]

    thread = await client.get(f"/api/v1/messages/thread/{first['threadId']}", headers=auth(sender))
    assert [m["subject"] for m in thread.json()] == ["Hi", "Re: Hi"]
    assert thread.json()[1]["parent_message_id"] == first["messageId"]


# ─── Inbox & threads ──────────────────────────────────────────────────────────

async def test_inbox_for_every_recipient_and_outsider_is_denied(client, make_user, auth):
    sender = await make_user("sender", name="Sam Sender")
    r1 = await make_user("r1", name="Rita One")
    r2 = await make_user("r2", name="Rob Two")
    outsider = await make_user("outsider")
    sent = (await _send(client, auth(sender), [r1.id, r2.id])).json()

    for user in (r1, r2):
        [entry] = (await client.get("/api/v1/messages/inbox", headers=auth(user))).json()
        assert entry["thread_id"] == sent["threadId"]
        assert entry["sender_name"] == "Sam Sender"
        assert entry["unread_count"] == 1

    [entry] = (await client.get("/api/v1/messages/inbox", headers=auth(sender))).json()
    assert entry["participant_names"] == "Rita One, Rob Two"
    assert entry["unread_count"] == 0

    denied = await client.get(
        f"/api/v1/messages/thread/{sent['threadId']}", headers=auth(outsider)
    )
    assert denied.status_code == 403
    assert denied.json()["error"]["code"] == "MSG_003"


async def test_sent_box(client, make_user, auth):
    sender = await make_user("sender")
    r1 = await make_user("r1")
    await _send(client, auth(sender), [r1.id], subject="One")
    await _send(client, auth(sender), [r1.id], subject="Two")

    resp = await client.get("/api/v1/messages/sent", headers=auth(sender))
    assert [m["subject"] for m in resp.json()] == ["Two", "One"]
    assert resp.json()[0]["recipient_id"] == r1.id


async def test_participants_and_leaving(client, make_user, auth):
    sender = await make_user("sender", name="Sam Sender")
    r1 = await make_user("r1", name="Rita One")
    sent = (await _send(client, auth(sender), [r1.id])).json()

    participants = await client.get(
        f"/api/v1/messages/thread/{sent['threadId']}/participants", headers=auth(r1)
    )
    assert [p["name"] for p in participants.json()] == ["Rita One", "Sam Sender"]

    left = await client.delete(f"/api/v1/messages/{sent['messageId']}", headers=auth(r1))
    assert left.status_code == 200
    assert (await client.get("/api/v1/messages/inbox", headers=auth(r1))).json() == []

    kept = await client.get(f"/api/v1/messages/thread/{sent['threadId']}", headers=auth(sender))
    assert kept.status_code == 200
    assert len(kept.json()) == 1


# ─── Read tracking & attachments ──────────────────────────────────────────────

async def test_mark_read_shows_receipt_and_read_status(client, make_user, auth):
    sender = await make_user("sender")
    r1 = await make_user("r1")
    sent = (await _send(client, auth(sender), [r1.id])).json()

    resp = await client.post(
        "/api/v1/messages/mark-read", json={"messageId": sent["messageId"]}, headers=auth(r1)
    )
    assert resp.status_code == 200

    thread = await client.get(f"/api/v1/messages/thread/{sent['threadId']}", headers=auth(sender))
    assert thread.json()[0]["read_by"] == [r1.id]

    status = await client.get("/api/v1/read-status", headers=auth(r1))
    assert status.json() == {"bulletins": [], "messages": [sent["messageId"]]}


async def test_mark_read_unknown_message(client, make_user, auth):
    user = await make_user("user")
    resp = await client.post(
        "/api/v1/messages/mark-read", json={"messageId": 404}, headers=auth(user)
    )
    assert resp.status_code == 404


async def test_attachment_download_requires_participation(client, make_user, auth):
    sender = await make_user("sender")
    r1 = await make_user("r1")
    outsider = await make_user("outsider")
    sent = (
        await _send(
            client, auth(sender), [r1.id], files=[("files", ("map.txt", b"route", "text/plain"))]
        )
    ).json()
    thread = await client.get(f"/api/v1/messages/thread/{sent['threadId']}", headers=auth(r1))
    [attachment] = thread.json()[0]["attachments"]
    url = f"/api/v1/messages/{sent['messageId']}/attachments/{attachment['id']}"

    download = await client.get(url, headers=auth(r1))
    assert download.status_code == 200
    assert download.content == b"route"
    assert (await client.get(url, headers=auth(outsider))).status_code == 403


async def test_attachment_listing_and_removal_by_sender(client, make_user, auth):
    sender = await make_user("sender")
    r1 = await make_user("r1")
    sent = (
        await _send(
            client, auth(sender), [r1.id], files=[("files", ("map.txt", b"route", "text/plain"))]
        )
    ).json()
    base = f"/api/v1/messages/{sent['messageId']}/attachments"

    [attachment] = (await client.get(base, headers=auth(r1))).json()
    assert attachment["original_filename"] == "map.txt"
    url = f"{base}/{attachment['id']}"

    assert (await client.delete(url, headers=auth(r1))).status_code == 403
    assert (await client.delete(url, headers=auth(sender))).status_code == 200
    assert (await client.get(base, headers=auth(r1))).json() == []
    assert (await client.get(url, headers=auth(r1))).status_code == 404
