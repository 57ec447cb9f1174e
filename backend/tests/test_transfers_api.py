"""End-to-end tests for the relay HTTP endpoints."""
import os
import time
from pathlib import Path


def _upload(client, name="cat.jpg", data=b"meow", content_type="image/jpeg"):
    return client.post("/api/upload", files={"file": (name, data, content_type)})


class TestHealth:
    def test_health(self, api_client):
        response = api_client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestUploadEndpoint:
    def test_upload_returns_id_and_url(self, api_client, upload_dir):
        response = _upload(api_client)
        assert response.status_code == 200

        body = response.json()
        assert body["filename"] == "cat.jpg"
        assert body["url"] == f"/d/{body['id']}"
        assert len(list(upload_dir.iterdir())) == 1

    def test_upload_without_file_is_client_error(self, api_client):
        response = api_client.post("/api/upload", data={"other": "field"})
        assert response.status_code == 400
        assert response.json()["detail"] == "no file"

    def test_oversize_upload_rejected(self, make_client, upload_dir):
        with make_client(max_file_size_bytes=1024) as client:
            response = _upload(client, data=b"x" * 1025)
            assert response.status_code == 413
            assert list(upload_dir.iterdir()) == []
            assert client.get("/api/list").json()["count"] == 0

    def test_storage_failure_is_server_error(self, api_client, monkeypatch):
        from relay.transfers.blob_store import BlobStore

        async def broken_put(self, source, original_name, max_bytes):
            raise OSError("read-only file system")

        monkeypatch.setattr(BlobStore, "put", broken_put)
        response = _upload(api_client)
        assert response.status_code == 500


class TestDownloadEndpoint:
    def test_download_once_then_gone(self, api_client, upload_dir):
        data = os.urandom(2048)
        body = _upload(api_client, data=data).json()

        response = api_client.get(body["url"])
        assert response.status_code == 200
        assert response.content == data
        assert 'filename="cat.jpg"' in response.headers["content-disposition"]

        assert list(upload_dir.iterdir()) == []
        ids = [item["id"] for item in api_client.get("/api/list").json()["items"]]
        assert body["id"] not in ids

        again = api_client.get(body["url"])
        assert again.status_code == 410

    def test_blob_deleted_before_open_is_gone(self, api_client, monkeypatch):
        body = _upload(api_client).json()
        service = api_client.app.state.transfer_service
        original_resolve = service.registry.resolve

        def resolve_then_unlink(file_id):
            entry = original_resolve(file_id)
            Path(entry.stored_path).unlink()
            return entry

        monkeypatch.setattr(service.registry, "resolve", resolve_then_unlink)
        response = api_client.get(body["url"])
        assert response.status_code == 410

    def test_blob_deleted_after_open_still_streams(self, api_client, monkeypatch):
        data = os.urandom(4096)
        body = _upload(api_client, data=data).json()
        service = api_client.app.state.transfer_service
        original_open = service.store.open

        def open_then_unlink(stored_path):
            fh = original_open(stored_path)
            Path(stored_path).unlink()
            return fh

        monkeypatch.setattr(service.store, "open", open_then_unlink)
        response = api_client.get(body["url"])
        assert response.status_code == 200
        assert response.content == data
        assert api_client.get(body["url"]).status_code == 410

    def test_unknown_id_is_gone_not_404(self, api_client):
        response = api_client.get("/d/ffffff")
        assert response.status_code == 410
        assert response.json()["detail"] == "Gone"


class TestListEndpoint:
    def test_list_empty(self, api_client):
        assert api_client.get("/api/list").json() == {"count": 0, "items": []}

    def test_list_items(self, api_client):
        a = _upload(api_client, name="a.jpg", data=b"aaaa").json()
        b = _upload(api_client, name="b.png", data=b"bb", content_type="image/png").json()

        body = api_client.get("/api/list").json()
        assert body["count"] == 2
        assert body["items"] == [
            {"id": a["id"], "filename": "a.jpg", "url": a["url"], "size": 4},
            {"id": b["id"], "filename": "b.png", "url": b["url"], "size": 2},
        ]

    def test_second_upload_does_not_clear_first(self, api_client):
        a = _upload(api_client, name="a.jpg").json()
        _upload(api_client, name="b.jpg")
        ids = [item["id"] for item in api_client.get("/api/list").json()["items"]]
        assert a["id"] in ids

    def test_clear_on_upload_setting(self, make_client):
        with make_client(clear_on_upload=True) as client:
            _upload(client, name="a.jpg")
            b = _upload(client, name="b.jpg").json()

            items = client.get("/api/list").json()["items"]
            assert [item["id"] for item in items] == [b["id"]]

    def test_rejected_upload_does_not_clear_with_clear_on_upload(self, make_client):
        with make_client(clear_on_upload=True, max_file_size_bytes=1024) as client:
            a = _upload(client, name="a.jpg").json()
            response = _upload(client, name="big.jpg", data=b"x" * 1025)
            assert response.status_code == 413

            items = client.get("/api/list").json()["items"]
            assert [item["id"] for item in items] == [a["id"]]
            assert client.get(a["url"]).status_code == 200


class TestClearEndpoint:
    def test_clear_removes_everything(self, api_client, upload_dir):
        uploaded = [_upload(api_client, name=f"{i}.jpg").json() for i in range(3)]
        (upload_dir / "abcdef-stray.jpg").write_bytes(b"stray")

        response = api_client.post("/api/clear")
        assert response.status_code == 200
        assert response.json() == {"ok": True}

        assert api_client.get("/api/list").json()["count"] == 0
        assert list(upload_dir.iterdir()) == []
        for body in uploaded:
            assert api_client.get(body["url"]).status_code == 410

    def test_clear_when_empty(self, api_client):
        assert api_client.post("/api/clear").json() == {"ok": True}


class TestExpiryEndpoint:
    def test_file_expires_without_download(self, make_client, upload_dir):
        with make_client(ttl_seconds=0.1, sweep_interval_seconds=3600) as client:
            body = _upload(client).json()
            stored = next(upload_dir.iterdir())

            time.sleep(0.4)

            assert client.get("/api/list").json()["count"] == 0
            assert not Path(stored).exists()
            assert client.get(body["url"]).status_code == 410
