from datetime import datetime, timezone

import pytest


@pytest.fixture()
def local(app, tmp_path):
    from app.services.storage import LocalStorage
    return LocalStorage(tmp_path / "store", public_base_url="http://files.test/", page_size=2)


class TestLocalStorage:
    def test_put_get_delete(self, local):
        from app.services.storage import ObjectNotFoundError

        local.put("uploads/CS-201/1/a.pdf", b"abc")
        assert local.exists("uploads/CS-201/1/a.pdf")
        assert local.get("uploads/CS-201/1/a.pdf") == b"abc"

        local.delete("uploads/CS-201/1/a.pdf")
        assert not local.exists("uploads/CS-201/1/a.pdf")
        assert not (local.root / "uploads").exists()
        with pytest.raises(ObjectNotFoundError):
            local.get("uploads/CS-201/1/a.pdf")
        with pytest.raises(ObjectNotFoundError):
            local.delete("uploads/CS-201/1/a.pdf")

    @pytest.mark.parametrize("key", ["../escape.txt", "/etc/passwd", "uploads/../../x", "a\\b", ""])
    def test_rejects_keys_outside_root(self, local, key):
        from app.services.storage import StorageError

        with pytest.raises(StorageError):
            local.put(key, b"x")
        assert local.exists(key) is False

    def test_paging_visits_every_key_once(self, local):
        keys = [f"uploads/X-1/1/{i}.pdf" for i in range(5)]
        for key in keys:
            local.put(key, b"x")
        local.put("other/skip.pdf", b"x")

        first, token = local.list_page("uploads/")
        assert len(first) == 2
        assert token == first[-1].key

        listed = [o.key for o in local.iter_objects("uploads/")]
        assert listed == sorted(keys)

    def test_exact_page_boundary_has_no_next_token(self, local):
        local.put("uploads/a.pdf", b"x")
        local.put("uploads/b.pdf", b"xy")
        objects, token = local.list_page("uploads/")
        assert token is None
        assert [o.size for o in objects] == [1, 2]
        assert objects[0].last_modified.tzinfo is not None

    def test_public_url_quotes_key(self, local):
        assert local.public_url("uploads/a b.pdf") == "http://files.test/uploads/a%20b.pdf"


class FakeClientError(Exception):
    def __init__(self, code):
        super().__init__(code)
        self.response = {"Error": {"Code": code}}


class FakeBody:
    def __init__(self, data):
        self._data = data

    def read(self):
        return self._data


class FakeS3:
    """In-memory stand-in for the handful of boto3 S3 client calls the backend makes."""

    def __init__(self):
        self.objects = {}
        self.list_calls = []

    def put_object(self, Bucket, Key, Body, ContentType=None):
        self.objects[Key] = Body

    def get_object(self, Bucket, Key):
        if Key not in self.objects:
            raise FakeClientError("NoSuchKey")
        return {"Body": FakeBody(self.objects[Key])}

    def head_object(self, Bucket, Key):
        if Key not in self.objects:
            raise FakeClientError("404")
        return {}

    def delete_object(self, Bucket, Key):
        self.objects.pop(Key, None)

    def list_objects_v2(self, Bucket, Prefix, MaxKeys, ContinuationToken=None):
        self.list_calls.append(ContinuationToken)
        keys = sorted(k for k in self.objects if k.startswith(Prefix))
        start = int(ContinuationToken) if ContinuationToken else 0
        page = keys[start:start + MaxKeys]
        response = {
            "Contents": [
                {"Key": k, "Size": len(self.objects[k]), "LastModified": datetime(2024, 1, 1, tzinfo=timezone.utc)}
                for k in page
            ],
            "IsTruncated": start + MaxKeys < len(keys),
        }
        if response["IsTruncated"]:
            response["NextContinuationToken"] = str(start + MaxKeys)
        return response


@pytest.fixture()
def s3(app):
    from app.services.storage import S3Storage

    client = FakeS3()
    return S3Storage("study-bucket", client=client, page_size=2, region="eu-west-1")


class TestS3Storage:
    def test_round_trip_and_missing(self, s3):
        from app.services.storage import ObjectNotFoundError

        s3.put("uploads/a.pdf", b"data", content_type="application/pdf")
        assert s3.exists("uploads/a.pdf")
        assert s3.get("uploads/a.pdf") == b"data"

        s3.delete("uploads/a.pdf")
        assert not s3.exists("uploads/a.pdf")
        with pytest.raises(ObjectNotFoundError):
            s3.get("uploads/a.pdf")
        with pytest.raises(ObjectNotFoundError):
            s3.delete("uploads/a.pdf")

    def test_follows_continuation_tokens(self, s3):
        for i in range(5):
            s3.put(f"uploads/{i}.pdf", b"x")
        s3.client.objects["uploads/folder/"] = b""

        listed = [o.key for o in s3.iter_objects("uploads/")]
        assert listed == [f"uploads/{i}.pdf" for i in range(5)]
        assert s3.client.list_calls == [None, "2", "4"]

    def test_other_errors_become_storage_errors(self, s3):
        from app.services.storage import ObjectNotFoundError, StorageError

        def boom(**kwargs):
            raise FakeClientError("AccessDenied")

        s3.client.get_object = boom
        s3.client.list_objects_v2 = boom
        with pytest.raises(StorageError) as exc_info:
            s3.get("uploads/a.pdf")
        assert not isinstance(exc_info.value, ObjectNotFoundError)
        with pytest.raises(StorageError):
            s3.list_page("uploads/")

    def test_public_urls(self, app):
        from app.services.storage import S3Storage

        assert S3Storage("b", client=FakeS3(), region="eu-west-1").public_url("k 1") == \
            "https://b.s3.eu-west-1.amazonaws.com/k%201"
        assert S3Storage("b", client=FakeS3(), endpoint_url="http://minio:9000/").public_url("k") == \
            "http://minio:9000/b/k"
        assert S3Storage("b", client=FakeS3(), public_base_url="https://cdn.test").public_url("k") == \
            "https://cdn.test/k"

    def test_bucket_required(self, app):
        from app.services.storage import S3Storage

        with pytest.raises(ValueError):
            S3Storage("", client=FakeS3())
