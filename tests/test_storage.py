from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, NoCredentialsError

import config
from errors import StorageError
from storage import S3Storage, SupabaseStorage, get_storage


# ============================================================================
# S3
# ============================================================================

def _s3(client=None):
    return S3Storage(access_key_id="key", secret_access_key="secret", region="sa-east-1", client=client or MagicMock())


def test_s3_public_url_is_presigned():
    client = MagicMock()
    client.generate_presigned_url.return_value = "https://arquivos.s3.amazonaws.com/propostas/a%20b.pdf?X-Amz-Signature=abc"
    storage = S3Storage(access_key_id="key", secret_access_key="secret", client=client, url_expires_in=600)

    url = storage.get_public_url("arquivos", "propostas/a b.pdf")

    assert url == "https://arquivos.s3.amazonaws.com/propostas/a%20b.pdf?X-Amz-Signature=abc"
    client.generate_presigned_url.assert_called_once_with(
        "get_object",
        Params={"Bucket": "arquivos", "Key": "propostas/a b.pdf"},
        ExpiresIn=600
    )
    assert storage.get_public_url("arquivos", "") is None


def test_s3_presigned_url_errors_are_wrapped():
    client = MagicMock()
    client.generate_presigned_url.side_effect = NoCredentialsError()
    with pytest.raises(StorageError, match="presign"):
        _s3(client).get_public_url("arquivos", "propostas/a.pdf")


def test_s3_upload_sets_content_type():
    client = MagicMock()
    _s3(client).upload_object("arquivos", "propostas/a.pdf", b"%PDF-1.4")

    kwargs = client.put_object.call_args.kwargs
    assert kwargs["Bucket"] == "arquivos"
    assert kwargs["Key"] == "propostas/a.pdf"
    assert kwargs["ContentType"] == "application/pdf"


def test_s3_download():
    client = MagicMock()
    client.get_object.return_value = {"Body": MagicMock(read=MagicMock(return_value=b"%PDF-1.4"))}
    assert _s3(client).download_object("arquivos", "modelos/a.pdf") == b"%PDF-1.4"


def test_s3_errors_are_wrapped():
    client = MagicMock()
    error = ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")
    client.get_object.side_effect = error
    client.put_object.side_effect = error
    storage = _s3(client)

    with pytest.raises(StorageError, match="NoSuchKey"):
        storage.download_object("arquivos", "modelos/a.pdf")
    with pytest.raises(StorageError):
        storage.upload_object("arquivos", "propostas/a.pdf", b"data")


def test_s3_missing_credentials(monkeypatch):
    monkeypatch.setattr(config, "AWS_ACCESS_KEY_ID", None)
    monkeypatch.setattr(config, "AWS_SECRET_ACCESS_KEY", None)
    with pytest.raises(ValueError, match="BUCKETEER"):
        S3Storage().client


# ============================================================================
# Supabase
# ============================================================================

def test_supabase_public_url():
    client = MagicMock()
    bucket = client.storage.from_.return_value
    bucket.get_public_url.return_value = "https://abc.supabase.co/storage/v1/object/public/arquivos/a.pdf"

    storage = SupabaseStorage(client=client)

    assert storage.get_public_url("arquivos", "a.pdf") == "https://abc.supabase.co/storage/v1/object/public/arquivos/a.pdf"
    client.storage.from_.assert_called_with("arquivos")


def test_supabase_public_url_dict_response():
    client = MagicMock()
    client.storage.from_.return_value.get_public_url.return_value = {"publicURL": "https://x/a.pdf"}
    assert SupabaseStorage(client=client).get_public_url("arquivos", "a.pdf") == "https://x/a.pdf"


def test_supabase_upload_options():
    client = MagicMock()
    SupabaseStorage(client=client).upload_object("arquivos", "propostas/a.pdf", b"%PDF-1.4")

    bucket = client.storage.from_.return_value
    args, kwargs = bucket.upload.call_args
    assert args[0] == "propostas/a.pdf"
    assert kwargs["file_options"]["content-type"] == "application/pdf"


def test_supabase_errors_are_wrapped():
    client = MagicMock()
    bucket = client.storage.from_.return_value
    bucket.download.side_effect = RuntimeError("Object not found")
    bucket.upload.side_effect = RuntimeError("Duplicate")
    storage = SupabaseStorage(client=client)

    with pytest.raises(StorageError, match="Object not found"):
        storage.download_object("arquivos", "modelos/a.pdf")
    with pytest.raises(StorageError, match="Duplicate"):
        storage.upload_object("arquivos", "propostas/a.pdf", b"data")


def test_supabase_missing_credentials(monkeypatch):
    monkeypatch.setattr(config, "SUPABASE_URL", None)
    monkeypatch.setattr(config, "SUPABASE_KEY", None)
    with pytest.raises(ValueError, match="SUPABASE_URL"):
        SupabaseStorage().client


# ============================================================================
# Factory
# ============================================================================

def test_get_storage():
    assert isinstance(get_storage("s3"), S3Storage)
    assert isinstance(get_storage("SUPABASE"), SupabaseStorage)
    with pytest.raises(ValueError):
        get_storage("ftp")


def test_s3_transport_errors_are_wrapped():
    client = MagicMock()
    client.get_object.side_effect = EndpointConnectionError(endpoint_url="https://arquivos.s3.amazonaws.com")
    client.put_object.side_effect = NoCredentialsError()
    storage = _s3(client)

    with pytest.raises(StorageError, match="EndpointConnectionError"):
        storage.download_object("arquivos", "modelos/a.pdf")
    with pytest.raises(StorageError):
        storage.upload_object("arquivos", "propostas/a.pdf", b"data")


def test_s3_missing_credentials_surface_as_storage_error(monkeypatch):
    monkeypatch.setattr(config, "AWS_ACCESS_KEY_ID", None)
    monkeypatch.setattr(config, "AWS_SECRET_ACCESS_KEY", None)
    storage = S3Storage()

    with pytest.raises(StorageError, match="BUCKETEER"):
        storage.download_object("arquivos", "modelos/a.pdf")
    with pytest.raises(StorageError, match="BUCKETEER"):
        storage.get_public_url("arquivos", "modelos/a.pdf")


def test_supabase_public_url_errors_are_wrapped():
    client = MagicMock()
    client.storage.from_.return_value.get_public_url.side_effect = RuntimeError("bucket not found")
    with pytest.raises(StorageError, match="bucket not found"):
        SupabaseStorage(client=client).get_public_url("arquivos", "a.pdf")
